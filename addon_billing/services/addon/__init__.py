"""
Add-on (Bonus) Calculation Engine.

Determines which billing add-ons apply to a visit, computes their points,
enforces combination constraints and persists an auditable trail.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from addon_billing.services.addon.billing_codes import BillingCodeSelector
from addon_billing.services.addon.combination import CombinationCheck, check_combination
from addon_billing.services.addon.conditions import ConditionEvaluator, ConditionResult
from addon_billing.services.addon.context_builder import ContextBuilder
from addon_billing.services.addon.demo_store import DemoHistoryStore, DemoRecordStore
from addon_billing.services.addon.orchestrator import AddOnCalculator, CalculationResult
from addon_billing.services.addon.patterns import PatternEvaluator, PatternResult
from addon_billing.services.addon.persister import HistoryPersister
from addon_billing.services.addon.recalculation import RecalculationService, VisitSummary
from addon_billing.services.addon.selector import DefinitionSelector
from addon_billing.services.addon.sql_store import SqlHistoryStore, SqlRecordStore
from addon_billing.services.addon.stores import (
    HistoryStore,
    HistoryTransaction,
    RecordStore,
    StoreMode,
)


def create_stores(
    mode: StoreMode = StoreMode.DEMO,
    session: Optional[AsyncSession] = None,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> tuple[RecordStore, HistoryStore]:
    """
    Create a record store and history store pair.

    Args:
        mode: DEMO for in-memory stores, LIVE for SQL stores
        session: Session for record reads (LIVE)
        session_maker: Factory for history transactions (LIVE)
    """
    if mode == StoreMode.DEMO:
        history = DemoHistoryStore()
        return DemoRecordStore(history), history

    if session is None or session_maker is None:
        raise ValueError("LIVE stores need a session and a session maker")
    return SqlRecordStore(session), SqlHistoryStore(session_maker)


__all__ = [
    # Stores
    "StoreMode",
    "RecordStore",
    "HistoryStore",
    "HistoryTransaction",
    "DemoRecordStore",
    "DemoHistoryStore",
    "SqlRecordStore",
    "SqlHistoryStore",
    "create_stores",
    # Engine
    "DefinitionSelector",
    "ConditionEvaluator",
    "ConditionResult",
    "PatternEvaluator",
    "PatternResult",
    "CombinationCheck",
    "check_combination",
    "AddOnCalculator",
    "CalculationResult",
    "HistoryPersister",
    "BillingCodeSelector",
    "ContextBuilder",
    "RecalculationService",
    "VisitSummary",
]
