"""
Pydantic Schemas for Record Store Snapshots.

Read-only views of the visit, patient, facility, staff and billing-code
records the engine consumes, plus the calculation history entry it writes.
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from addon_billing.core.enums import InsuranceCategory, LinkState, VisitStatus


class _Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


def _none_to_empty(v: Any) -> Any:
    return v if v is not None else []


class VisitSnapshot(_Snapshot):
    """Visit record fields read by the engine."""

    id: UUID
    patient_id: UUID
    facility_id: UUID
    staff_id: Optional[UUID] = None
    status: VisitStatus = VisitStatus.COMPLETED
    visit_date: date
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    emergency_visit_reason: Optional[str] = None
    multiple_visit_reason: Optional[str] = None
    long_visit_reason: Optional[str] = None
    is_second_visit: bool = False
    is_discharge_date: bool = False
    is_first_visit_of_plan: bool = False
    has_collaboration_record: bool = False
    is_terminal_care: bool = False
    specialist_care_type: Optional[str] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_emergency(self) -> bool:
        return bool(self.emergency_visit_reason)


class PatientSnapshot(_Snapshot):
    """Patient demographics and care status."""

    id: UUID
    facility_id: UUID
    date_of_birth: Optional[date] = None
    insurance_category: InsuranceCategory = InsuranceCategory.MEDICAL
    site_id: Optional[UUID] = None
    last_discharge_date: Optional[date] = None
    last_plan_created_date: Optional[date] = None
    death_date: Optional[date] = None
    death_location_code: Optional[str] = None
    special_management_categories: list[str] = Field(default_factory=list)

    @field_validator("special_management_categories", mode="before")
    @classmethod
    def empty_categories(cls, v: Any) -> Any:
        return _none_to_empty(v)

    def age_on(self, on_date: date) -> Optional[int]:
        """Completed years of age on a date."""
        if self.date_of_birth is None:
            return None
        born = self.date_of_birth
        had_birthday = (on_date.month, on_date.day) >= (born.month, born.day)
        return on_date.year - born.year - (0 if had_birthday else 1)


class FacilitySnapshot(_Snapshot):
    """Facility capability flags."""

    id: UUID
    has_24h_support_system: bool = False
    has_24h_support_system_enhanced: bool = False
    has_emergency_support_system: bool = False
    has_emergency_support_system_enhanced: bool = False
    burden_reduction_measures: list[str] = Field(default_factory=list)

    @field_validator("burden_reduction_measures", mode="before")
    @classmethod
    def empty_measures(cls, v: Any) -> Any:
        return _none_to_empty(v)


class StaffSnapshot(_Snapshot):
    """Assigned nurse and qualifications."""

    id: UUID
    full_name: str = ""
    specialist_qualifications: list[str] = Field(default_factory=list)

    @field_validator("specialist_qualifications", mode="before")
    @classmethod
    def empty_qualifications(cls, v: Any) -> Any:
        return _none_to_empty(v)


class BillingCodeSnapshot(_Snapshot):
    """External billing (service) code."""

    id: UUID
    service_code: str
    name: str = ""
    insurance_category: InsuranceCategory
    valid_from: date
    valid_to: Optional[date] = None
    is_active: bool = True

    def is_valid_on(self, on_date: date) -> bool:
        if not self.is_active or on_date < self.valid_from:
            return False
        return self.valid_to is None or on_date <= self.valid_to


class SpecialManagementSnapshot(_Snapshot):
    """Special-management definition (category and billing class)."""

    id: UUID
    facility_id: Optional[UUID] = None
    category: str
    billing_class: str
    is_active: bool = True


class CalculationHistoryEntry(_Snapshot):
    """Persisted form of one accepted add-on."""

    id: Optional[UUID] = None
    visit_id: UUID
    definition_id: UUID
    code: str
    points: int
    definition_version: str
    trail: dict[str, Any] = Field(default_factory=dict)
    billing_code_id: Optional[UUID] = None
    link_state: LinkState = LinkState.AUTOMATIC
    created_at: Optional[datetime] = None

    @property
    def has_manual_link(self) -> bool:
        return self.link_state == LinkState.MANUAL and self.billing_code_id is not None

    @property
    def is_manually_cleared(self) -> bool:
        return self.link_state == LinkState.CLEARED or (
            self.link_state == LinkState.MANUAL and self.billing_code_id is None
        )
