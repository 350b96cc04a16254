"""
Calculation History Persister.

Replaces a visit's history with a fresh calculation in one transaction,
carrying forward billing-code links an operator set or cleared by hand.
"""

import logging
from typing import Optional
from uuid import UUID

from addon_billing.core.enums import LinkState
from addon_billing.schemas.context import CalculationContext
from addon_billing.schemas.records import CalculationHistoryEntry
from addon_billing.services.addon.billing_codes import BillingCodeSelector
from addon_billing.services.addon.orchestrator import CalculationResult
from addon_billing.services.addon.stores import HistoryStore
from addon_billing.utils.errors import PersistenceError, RecordNotFoundError

module_logger = logging.getLogger(__name__)


class HistoryPersister:
    """
    Persist calculation results for a visit.

    Usage:
        persister = HistoryPersister(history_store, BillingCodeSelector(record_store))
        rows = await persister.save(context, results)
    """

    def __init__(
        self,
        history: HistoryStore,
        billing_codes: Optional[BillingCodeSelector] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._history = history
        self._billing_codes = billing_codes
        self._logger = logger or module_logger

    async def save(
        self,
        context: CalculationContext,
        results: list[CalculationResult],
    ) -> list[CalculationHistoryEntry]:
        """
        Replace the visit's history rows with ``results``.

        Args:
            context: Visit snapshot (used for automatic billing-code selection)
            results: Accepted add-ons from the calculator

        Returns:
            Rows written, in result order

        Raises:
            PersistenceError: the transaction failed and was rolled back
        """
        visit_id = context.visit_id
        try:
            async with self._history.transaction() as tx:
                existing = await tx.list_for_visit(visit_id)
                manual_links: dict[UUID, UUID] = {}
                cleared: set[UUID] = set()
                for row in existing:
                    if row.has_manual_link:
                        manual_links[row.definition_id] = row.billing_code_id  # type: ignore[assignment]
                    elif row.is_manually_cleared:
                        cleared.add(row.definition_id)

                deleted = await tx.delete_for_visit(visit_id)

                rows: list[CalculationHistoryEntry] = []
                written: set[UUID] = set()
                for result in results:
                    if result.definition_id in written:
                        self._logger.warning(
                            f"Duplicate definition {result.definition_id} ({result.code}) "
                            f"for visit {visit_id}; skipping"
                        )
                        continue
                    written.add(result.definition_id)

                    billing_code_id, link_state = await self._resolve_link(
                        result, context, manual_links, cleared
                    )
                    rows.append(
                        CalculationHistoryEntry(
                            visit_id=visit_id,
                            definition_id=result.definition_id,
                            code=result.code,
                            points=result.points,
                            definition_version=result.definition_version,
                            trail=result.trail,
                            billing_code_id=billing_code_id,
                            link_state=link_state,
                        )
                    )

                await tx.insert(rows)
        except PersistenceError:
            raise
        except Exception as e:
            self._logger.error(f"Failed to save calculation history for visit {visit_id}: {e}")
            raise PersistenceError(str(e), visit_id=str(visit_id)) from e

        self._logger.info(
            f"Saved {len(rows)} history rows for visit {visit_id} (replaced {deleted})"
        )
        return rows

    async def _resolve_link(
        self,
        result: CalculationResult,
        context: CalculationContext,
        manual_links: dict[UUID, UUID],
        cleared: set[UUID],
    ) -> tuple[Optional[UUID], LinkState]:
        if result.definition_id in manual_links:
            self._logger.info(f"Preserving manual billing code for {result.code}")
            return manual_links[result.definition_id], LinkState.MANUAL

        if result.definition_id in cleared:
            self._logger.info(f"Skipping automatic billing code for cleared {result.code}")
            return None, LinkState.CLEARED

        if self._billing_codes is None:
            return None, LinkState.AUTOMATIC

        billing_code_id = await self._billing_codes.select(result.code, context)
        if billing_code_id is None:
            self._logger.info(f"No billing code selected for {result.code}")
        return billing_code_id, LinkState.AUTOMATIC

    # =========================================================================
    # Manual link operations
    # =========================================================================

    async def set_manual_link(
        self,
        visit_id: UUID,
        definition_id: UUID,
        billing_code_id: UUID,
    ) -> None:
        """
        Link a history row to a billing code chosen by an operator.

        Raises:
            RecordNotFoundError: no history row for the visit and definition
        """
        await self._update_link(visit_id, definition_id, billing_code_id, LinkState.MANUAL)
        self._logger.info(f"Visit {visit_id}: manual billing code {billing_code_id} for {definition_id}")

    async def clear_link(self, visit_id: UUID, definition_id: UUID) -> None:
        """
        Remove a history row's billing code and keep it unlinked on recalculation.

        Raises:
            RecordNotFoundError: no history row for the visit and definition
        """
        await self._update_link(visit_id, definition_id, None, LinkState.CLEARED)
        self._logger.info(f"Visit {visit_id}: cleared billing code for {definition_id}")

    async def _update_link(
        self,
        visit_id: UUID,
        definition_id: UUID,
        billing_code_id: Optional[UUID],
        link_state: LinkState,
    ) -> None:
        async with self._history.transaction() as tx:
            updated = await tx.update_link(visit_id, definition_id, billing_code_id, link_state)
        if not updated:
            raise RecordNotFoundError(
                f"No calculation history for visit {visit_id} and definition {definition_id}"
            )
