"""
Calculation Context Schema.

Immutable per-visit snapshot read by every condition and pattern. Each
attribute a condition kind needs is an explicit field, so a definition
that names an unknown field is rejected when it is loaded instead of
silently failing at evaluation time.
"""

from datetime import date, datetime, timezone
from typing import Optional
from uuid import UUID

import pytz
from pydantic import BaseModel, ConfigDict, Field, model_validator

from addon_billing.core.enums import InsuranceCategory, TimeBucket


class CalculationContext(BaseModel):
    """Everything the engine knows about one visit."""

    model_config = ConfigDict(frozen=True)

    # Identity
    visit_id: UUID
    patient_id: UUID
    facility_id: UUID
    staff_id: Optional[UUID] = None

    # Visit timing
    visit_date: date
    visit_start: Optional[datetime] = None
    visit_end: Optional[datetime] = None
    daily_visit_ordinal: int = Field(default=1, ge=1)

    # Visit reasons
    emergency_visit_reason: Optional[str] = None
    multiple_visit_reason: Optional[str] = None
    long_visit_reason: Optional[str] = None

    # Record flags
    is_second_visit: bool = False
    is_discharge_date: bool = False
    is_first_visit_of_plan: bool = False
    has_collaboration_record: bool = False
    is_terminal_care: bool = False
    specialist_care_type: Optional[str] = None

    # Patient
    insurance_category: InsuranceCategory
    patient_age: Optional[int] = Field(default=None, ge=0)
    site_id: Optional[UUID] = None
    last_discharge_date: Optional[date] = None
    last_plan_created_date: Optional[date] = None
    death_date: Optional[date] = None
    death_location_code: Optional[str] = None
    special_management_categories: tuple[str, ...] = ()
    special_management_tier: Optional[int] = Field(default=None, ge=1, le=2)

    # Facility capability flags
    has_24h_support_system: bool = False
    has_24h_support_system_enhanced: bool = False
    has_emergency_support_system: bool = False
    has_emergency_support_system_enhanced: bool = False
    burden_reduction_measures: tuple[str, ...] = ()

    # Assigned staff
    staff_qualifications: tuple[str, ...] = ()

    @model_validator(mode="after")
    def end_after_start(self) -> "CalculationContext":
        """Ensure the visit does not end before it starts."""
        if self.visit_start and self.visit_end and self.visit_end < self.visit_start:
            raise ValueError("Visit end must be on or after visit start")
        return self

    @property
    def duration_minutes(self) -> Optional[int]:
        """Whole minutes between actual start and end, if both are recorded."""
        if self.visit_start is None or self.visit_end is None:
            return None
        return int((self.visit_end - self.visit_start).total_seconds() // 60)

    def local_start(self, tz: pytz.BaseTzInfo) -> Optional[datetime]:
        """Visit start in civic time; naive timestamps are taken as UTC."""
        if self.visit_start is None:
            return None
        start = self.visit_start
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        return start.astimezone(tz)


def time_bucket_for(local_time: datetime) -> TimeBucket:
    """Assign a local start time to exactly one time-of-day bucket."""
    hour = local_time.hour
    if hour >= 22 or hour < 6:
        return TimeBucket.LATE_NIGHT
    if 18 <= hour < 22:
        return TimeBucket.NIGHT
    if 6 <= hour < 8:
        return TimeBucket.EARLY_MORNING
    return TimeBucket.DAYTIME


CONTEXT_FIELD_NAMES = frozenset(CalculationContext.model_fields)
