"""
Billing-Code Auto-Selection.

Best-effort mapping from an accepted add-on to the external billing
(service) code it is claimed under. Only add-ons whose service code can be
derived from the visit alone are mapped; all others are left for an
operator to link by hand.
"""

import logging
from typing import Awaitable, Callable, Optional
from uuid import UUID

from addon_billing.schemas.context import CalculationContext
from addon_billing.services.addon.patterns import LOW_OCCUPANCY_MAX
from addon_billing.services.addon.stores import RecordStore

logger = logging.getLogger(__name__)

# Emergency visits up to this day of the month use the first-half code
EMERGENCY_FIRST_HALF_LAST_DAY = 14

# Discharge support longer than this many minutes uses the long code
DISCHARGE_LONG_MINUTES = 90

ServiceCodeChooser = Callable[[str, CalculationContext, RecordStore], Awaitable[Optional[str]]]


async def _emergency_visit(code: str, context: CalculationContext, records: RecordStore) -> Optional[str]:
    return "510002470" if context.visit_date.day <= EMERGENCY_FIRST_HALF_LAST_DAY else "510004570"


async def _time_of_day(code: str, context: CalculationContext, records: RecordStore) -> Optional[str]:
    if context.visit_start is None:
        return None
    return "510004070" if code == "medical_late_night" else "510003970"


async def _discharge_support(code: str, context: CalculationContext, records: RecordStore) -> Optional[str]:
    if not context.is_discharge_date:
        return None
    if code == "discharge_support_guidance_long":
        minutes = context.duration_minutes
        if minutes is None or minutes <= DISCHARGE_LONG_MINUTES:
            return None
        return "550001270"
    return "550001170"


async def _support_system(code: str, context: CalculationContext, records: RecordStore) -> Optional[str]:
    return "550002170" if code == "24h_response_system_enhanced" else "550000670"


async def _multiple_visits(code: str, context: CalculationContext, records: RecordStore) -> Optional[str]:
    low = True
    if context.site_id is None:
        logger.warning(f"No site assigned to patient {context.patient_id}; using low-occupancy code")
    else:
        others = await records.count_site_patients(
            facility_id=context.facility_id,
            site_id=context.site_id,
            visit_date=context.visit_date,
            exclude_visit_id=context.visit_id,
        )
        low = others + 1 <= LOW_OCCUPANCY_MAX

    if code == "medical_multiple_visit_2times_1-2":
        return "510001970" if low else "510002070"
    return "510002170" if low else "510002270"


SERVICE_CODE_RULES: dict[str, ServiceCodeChooser] = {
    "medical_emergency_visit": _emergency_visit,
    "medical_night_early_morning": _time_of_day,
    "medical_late_night": _time_of_day,
    "discharge_support_guidance_basic": _discharge_support,
    "discharge_support_guidance_long": _discharge_support,
    "24h_response_system_basic": _support_system,
    "24h_response_system_enhanced": _support_system,
    "medical_multiple_visit_2times_1-2": _multiple_visits,
    "medical_multiple_visit_3times": _multiple_visits,
}


class BillingCodeSelector:
    """
    Choose a billing code for an accepted add-on.

    Never raises: lookup failures are logged and yield no link.
    """

    def __init__(
        self,
        records: RecordStore,
        rules: Optional[dict[str, ServiceCodeChooser]] = None,
    ):
        self._records = records
        self._rules = rules if rules is not None else SERVICE_CODE_RULES

    async def select(self, code: str, context: CalculationContext) -> Optional[UUID]:
        """
        Resolve the billing code id for an add-on code.

        Args:
            code: Accepted add-on code
            context: Visit snapshot

        Returns:
            Billing code id valid on the visit date, or None
        """
        chooser = self._rules.get(code)
        if chooser is None:
            return None

        try:
            service_code = await chooser(code, context, self._records)
            if service_code is None:
                return None
            billing_code = await self._records.find_billing_code(
                service_code, context.insurance_category, context.visit_date
            )
        except Exception as e:
            logger.error(f"Error selecting billing code for {code} on visit {context.visit_id}: {e}")
            return None

        if billing_code is None:
            logger.info(f"No billing code {service_code} valid on {context.visit_date} for {code}")
            return None
        return billing_code.id
