"""
Calculation Context Builder.

Assembles the immutable per-visit snapshot from the record store:
visit timing and flags, patient demographics, facility capability flags,
the assigned nurse's qualifications, the same-day visit ordinal and the
special-management tier.
"""

import logging
from datetime import timezone
from typing import Optional
from uuid import UUID

from pydantic import ValidationError

from addon_billing.core.enums import HIGH_SPECIAL_MANAGEMENT_CLASS
from addon_billing.schemas.context import CalculationContext
from addon_billing.schemas.records import PatientSnapshot, VisitSnapshot
from addon_billing.services.addon.stores import RecordStore
from addon_billing.utils.errors import ContextAssemblyError

logger = logging.getLogger(__name__)


def _start_sort_key(visit: VisitSnapshot) -> tuple[int, float, str]:
    """Chronological by actual start; visits without a start sort last."""
    start = visit.actual_start
    if start is None:
        return (1, 0.0, str(visit.id))
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    return (0, start.timestamp(), str(visit.id))


class ContextBuilder:
    """Build a CalculationContext for a visit."""

    def __init__(self, records: RecordStore):
        self._records = records

    async def build(self, visit_id: UUID) -> CalculationContext:
        """
        Assemble the context for one visit.

        Raises:
            ContextAssemblyError: visit or patient missing, or a record or
                the snapshot does not validate
        """
        try:
            return await self._build(visit_id)
        except ValidationError as e:
            raise ContextAssemblyError(
                f"Invalid context for visit {visit_id}: {e}", visit_id=str(visit_id)
            ) from e

    async def _build(self, visit_id: UUID) -> CalculationContext:
        visit = await self._records.get_visit(visit_id)
        if visit is None:
            raise ContextAssemblyError(f"Visit {visit_id} not found", visit_id=str(visit_id))

        patient = await self._records.get_patient(visit.patient_id)
        if patient is None:
            raise ContextAssemblyError(
                f"Patient {visit.patient_id} for visit {visit_id} not found", visit_id=str(visit_id)
            )

        facility = await self._records.get_facility(visit.facility_id)
        if facility is None:
            logger.warning(f"Facility {visit.facility_id} not found; capability flags default to off")

        staff = await self._records.get_staff(visit.staff_id) if visit.staff_id else None

        ordinal = await self.daily_visit_ordinal(visit)
        tier = await self.special_management_tier(patient, visit.facility_id)

        return CalculationContext(
            visit_id=visit.id,
            patient_id=patient.id,
            facility_id=visit.facility_id,
            staff_id=staff.id if staff else None,
            visit_date=visit.visit_date,
            visit_start=visit.actual_start,
            visit_end=visit.actual_end,
            daily_visit_ordinal=ordinal,
            emergency_visit_reason=visit.emergency_visit_reason or None,
            multiple_visit_reason=visit.multiple_visit_reason or None,
            long_visit_reason=visit.long_visit_reason or None,
            is_second_visit=visit.is_second_visit,
            is_discharge_date=visit.is_discharge_date,
            is_first_visit_of_plan=visit.is_first_visit_of_plan,
            has_collaboration_record=visit.has_collaboration_record,
            is_terminal_care=visit.is_terminal_care,
            specialist_care_type=visit.specialist_care_type,
            insurance_category=patient.insurance_category,
            patient_age=patient.age_on(visit.visit_date),
            site_id=patient.site_id,
            last_discharge_date=patient.last_discharge_date,
            last_plan_created_date=patient.last_plan_created_date,
            death_date=patient.death_date,
            death_location_code=patient.death_location_code,
            special_management_categories=tuple(patient.special_management_categories),
            special_management_tier=tier,
            has_24h_support_system=bool(facility and facility.has_24h_support_system),
            has_24h_support_system_enhanced=bool(facility and facility.has_24h_support_system_enhanced),
            has_emergency_support_system=bool(facility and facility.has_emergency_support_system),
            has_emergency_support_system_enhanced=bool(
                facility and facility.has_emergency_support_system_enhanced
            ),
            burden_reduction_measures=tuple(facility.burden_reduction_measures) if facility else (),
            staff_qualifications=tuple(staff.specialist_qualifications) if staff else (),
        )

    async def daily_visit_ordinal(self, visit: VisitSnapshot) -> int:
        """1-based position of the visit among the patient's visits that day."""
        same_day = await self._records.list_patient_visits(
            patient_id=visit.patient_id,
            start=visit.visit_date,
            end=visit.visit_date,
        )
        if all(v.id != visit.id for v in same_day):
            same_day.append(visit)
        same_day.sort(key=_start_sort_key)
        return next(i for i, v in enumerate(same_day, start=1) if v.id == visit.id)

    async def special_management_tier(self, patient: PatientSnapshot, facility_id: UUID) -> Optional[int]:
        """
        Resolve the patient's special-management tier.

        1 when any matching definition is of the high billing class for the
        patient's insurance category, otherwise 2; None without categories.
        """
        categories = patient.special_management_categories
        if not categories:
            return None

        definitions = await self._records.list_special_management_definitions(categories, facility_id)
        high = HIGH_SPECIAL_MANAGEMENT_CLASS[patient.insurance_category].value
        if any(d.billing_class == high for d in definitions):
            return 1
        return 2
