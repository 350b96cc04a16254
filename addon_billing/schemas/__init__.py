"""
Pydantic Schemas for the Add-on Calculation Engine.
"""

from addon_billing.schemas.context import CalculationContext, time_bucket_for
from addon_billing.schemas.addon import (
    AddOnDefinitionSchema,
    AgeBracketConfig,
    ConditionSpec,
    DurationConfig,
    MonthlyThresholdConfig,
    SiteOccupancyConfig,
    TimeOfDayConfig,
    VisitOrdinalConfig,
    parse_pattern_config,
)
from addon_billing.schemas.records import (
    BillingCodeSnapshot,
    CalculationHistoryEntry,
    FacilitySnapshot,
    PatientSnapshot,
    SpecialManagementSnapshot,
    StaffSnapshot,
    VisitSnapshot,
)

__all__ = [
    "CalculationContext",
    "time_bucket_for",
    "AddOnDefinitionSchema",
    "AgeBracketConfig",
    "ConditionSpec",
    "DurationConfig",
    "MonthlyThresholdConfig",
    "SiteOccupancyConfig",
    "TimeOfDayConfig",
    "VisitOrdinalConfig",
    "parse_pattern_config",
    "BillingCodeSnapshot",
    "CalculationHistoryEntry",
    "FacilitySnapshot",
    "PatientSnapshot",
    "SpecialManagementSnapshot",
    "StaffSnapshot",
    "VisitSnapshot",
]
