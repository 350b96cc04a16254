"""
Billing Code and Special Management Definition Models.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class BillingCode(Base, UUIDModel, TimeStampedModel):
    """External service (billing) code a history row may link to."""

    __tablename__ = "billing_codes"

    service_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    insurance_category: Mapped[str] = mapped_column(String(20), nullable=False)
    points: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_billing_codes_lookup", "insurance_category", "service_code"),
    )

    def __repr__(self) -> str:
        return f"<BillingCode(service_code='{self.service_code}')>"


class SpecialManagementDefinition(Base, UUIDModel, TimeStampedModel):
    """Special-management category and its billing class."""

    __tablename__ = "special_management_definitions"

    facility_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        nullable=True,
    )
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    billing_class: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="medical_5000, medical_2500, care_500 or care_250",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<SpecialManagementDefinition(category='{self.category}')>"
