"""
Definition Selector.

Resolves the add-on definitions effective for a visit date, facility and
insurance category.
"""

import logging
from datetime import date
from uuid import UUID

from addon_billing.core.config import get_settings
from addon_billing.core.enums import InsuranceCategory
from addon_billing.schemas.addon import AddOnDefinitionSchema
from addon_billing.services.addon.stores import RecordStore

logger = logging.getLogger(__name__)


class DefinitionSelector:
    """
    Select effective definitions in evaluation order.

    The record store may over-select (for example by ignoring the validity
    window); every candidate is re-checked here so the result is exactly
    the effective set.
    """

    def __init__(self, records: RecordStore, default_order: int | None = None):
        self._records = records
        self._default_order = (
            default_order if default_order is not None else get_settings().DEFAULT_EVALUATION_ORDER
        )

    def sort_key(self, definition: AddOnDefinitionSchema) -> tuple[int, str]:
        """Ascending evaluation order, ties broken by id."""
        order = definition.evaluation_order
        return (order if order is not None else self._default_order, str(definition.id))

    async def select(
        self,
        visit_date: date,
        facility_id: UUID,
        insurance_category: InsuranceCategory,
    ) -> list[AddOnDefinitionSchema]:
        candidates = await self._records.list_definitions(visit_date, facility_id, insurance_category)
        effective = [
            d
            for d in candidates
            if d.is_active
            and d.applies_to(facility_id, insurance_category)
            and d.is_effective_on(visit_date)
        ]
        effective.sort(key=self.sort_key)

        logger.debug(
            f"Selected {len(effective)} of {len(candidates)} definitions "
            f"for {visit_date} ({insurance_category.value})"
        )
        return effective
