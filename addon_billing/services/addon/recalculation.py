"""
Recalculation Service.

Entry points the enclosing application calls after a visit is recorded
or edited, and for re-running a patient's billing month.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional
from uuid import UUID

from addon_billing.core.config import AddOnEngineSettings, get_settings
from addon_billing.core.enums import VisitStatus
from addon_billing.services.addon.billing_codes import BillingCodeSelector
from addon_billing.services.addon.conditions import month_bounds
from addon_billing.services.addon.context_builder import ContextBuilder
from addon_billing.services.addon.orchestrator import AddOnCalculator, CalculationResult
from addon_billing.services.addon.persister import HistoryPersister
from addon_billing.services.addon.stores import HistoryStore, RecordStore
from addon_billing.utils.errors import ContextAssemblyError

module_logger = logging.getLogger(__name__)


@dataclass
class VisitSummary:
    """Outcome of recalculating one visit in a period run."""

    visit_id: UUID
    visit_date: date
    codes: list[str] = field(default_factory=list)
    total_points: int = 0
    skipped: bool = False
    error: Optional[str] = None


class RecalculationService:
    """
    Calculate and persist add-ons for visits.

    Usage:
        service = RecalculationService(record_store, history_store)
        results = await service.recalculate_visit(visit_id)
    """

    def __init__(
        self,
        records: RecordStore,
        history: HistoryStore,
        settings: Optional[AddOnEngineSettings] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._records = records
        self._settings = settings or get_settings()
        self._logger = logger or module_logger
        self.builder = ContextBuilder(records)
        self.calculator = AddOnCalculator(records, self._settings, logger=self._logger)
        self.persister = HistoryPersister(history, BillingCodeSelector(records), logger=self._logger)

    async def recalculate_visit(self, visit_id: UUID, save: bool = True) -> list[CalculationResult]:
        """
        Recalculate one visit.

        Args:
            visit_id: Visit to calculate
            save: Replace the visit's persisted history with the results

        Raises:
            ContextAssemblyError: the visit cannot be turned into a context
            PersistenceError: saving failed; nothing was written
        """
        context = await self.builder.build(visit_id)
        results = await self.calculator.calculate(context)
        if save:
            await self.persister.save(context, results)
        return results

    async def recalculate_period(
        self,
        patient_id: UUID,
        facility_id: UUID,
        year: int,
        month: int,
    ) -> list[VisitSummary]:
        """
        Recalculate a patient's completed visits in one calendar month.

        Visits are processed one at a time in date order. A visit whose
        context cannot be assembled is logged and reported as skipped.

        Raises:
            PersistenceError: saving any visit failed
        """
        start, end = month_bounds(date(year, month, 1))
        visits = await self._records.list_patient_visits(
            patient_id=patient_id,
            start=start,
            end=end,
            statuses=[VisitStatus.COMPLETED],
            facility_id=facility_id,
        )

        summaries: list[VisitSummary] = []
        for visit in visits:
            try:
                results = await self.recalculate_visit(visit.id)
            except ContextAssemblyError as e:
                self._logger.warning(f"Skipping visit {visit.id}: {e.detail}")
                summaries.append(
                    VisitSummary(visit_id=visit.id, visit_date=visit.visit_date, skipped=True, error=e.detail)
                )
                continue

            summaries.append(
                VisitSummary(
                    visit_id=visit.id,
                    visit_date=visit.visit_date,
                    codes=[r.code for r in results],
                    total_points=sum(r.points for r in results),
                )
            )

        self._logger.info(
            f"Recalculated {len(summaries)} visits for patient {patient_id} in {year}-{month:02d}"
        )
        return summaries
