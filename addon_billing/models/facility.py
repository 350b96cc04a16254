"""
Facility Model.
"""

from typing import Optional

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class Facility(Base, UUIDModel, TimeStampedModel):
    """Visiting-nurse station and its capability flags."""

    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Capability flags
    has_24h_support_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_24h_support_system_enhanced: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    has_emergency_support_system: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    has_emergency_support_system_enhanced: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    burden_reduction_measures: Mapped[Optional[list[str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Nursing burden-reduction measures in place",
    )

    def __repr__(self) -> str:
        return f"<Facility(id={self.id}, name='{self.name}')>"
