"""
Patient Model.
"""

from datetime import date
from typing import Optional
from uuid import UUID

from sqlalchemy import JSON, Date, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class Patient(Base, UUIDModel, TimeStampedModel):
    """Demographic and care-status fields read by the engine."""

    __tablename__ = "patients"

    facility_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    insurance_category: Mapped[str] = mapped_column(String(20), nullable=False, default="medical")

    # Same-building residence
    site_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
        comment="Building the patient resides in",
    )

    # Care status
    last_discharge_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    last_plan_created_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    death_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    death_location_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    special_management_categories: Mapped[Optional[list[str]]] = mapped_column(
        JSON, nullable=True
    )

    def __repr__(self) -> str:
        return f"<Patient(id={self.id})>"
