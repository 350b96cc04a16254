"""
Staff Member Model.
"""

from typing import Optional

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class StaffMember(Base, UUIDModel, TimeStampedModel):
    """Nurse assigned to visits."""

    __tablename__ = "staff_members"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    specialist_qualifications: Mapped[Optional[list[str]]] = mapped_column(
        JSON,
        nullable=True,
        comment="Specialist certifications held",
    )

    def __repr__(self) -> str:
        return f"<StaffMember(id={self.id}, full_name='{self.full_name}')>"
