"""
Visit Record Model.
"""

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.core.enums import VisitStatus
from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class VisitRecord(Base, UUIDModel, TimeStampedModel):
    """A completed (or draft) home visit."""

    __tablename__ = "visit_records"

    patient_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    facility_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    staff_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("staff_members.id"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=VisitStatus.DRAFT.value
    )
    visit_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Visit reasons
    emergency_visit_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    multiple_visit_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    long_visit_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Record flags
    is_second_visit: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_discharge_date: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_first_visit_of_plan: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    has_collaboration_record: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_terminal_care: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    specialist_care_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Soft delete
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_visit_records_patient_date", "patient_id", "visit_date"),
        Index("ix_visit_records_facility_date", "facility_id", "visit_date"),
    )

    def __repr__(self) -> str:
        return f"<VisitRecord(id={self.id}, visit_date={self.visit_date}, status='{self.status}')>"
