"""
Core Enumerations for the Add-on Calculation Engine.

Closed vocabularies shared by the definition schemas, the ORM tables and
the evaluators.
"""

from enum import Enum


# =============================================================================
# Definition Enums
# =============================================================================


class InsuranceCategory(str, Enum):
    """Billing scheme that governs which definitions apply."""

    MEDICAL = "medical"  # Medical insurance
    CARE = "care"  # Long-term-care insurance


class ValueType(str, Enum):
    """How the point value of an add-on is computed."""

    FIXED = "fixed"
    CONDITIONAL = "conditional"


class PatternKind(str, Enum):
    """Variable-value computation patterns."""

    TIME_OF_DAY = "time_of_day"
    DURATION = "duration"
    AGE_BRACKET = "age_bracket"
    VISIT_ORDINAL = "visit_ordinal"
    SITE_OCCUPANCY = "site_occupancy"
    MONTHLY_THRESHOLD = "monthly_threshold"

    @classmethod
    def resolve(cls, name: str) -> "PatternKind":
        """Resolve a pattern name, accepting the legacy master-data names."""
        if name in PATTERN_ALIASES:
            return PATTERN_ALIASES[name]
        return cls(name)


PATTERN_ALIASES: dict[str, PatternKind] = {
    "time_based": PatternKind.TIME_OF_DAY,
    "duration_based": PatternKind.DURATION,
    "age_based": PatternKind.AGE_BRACKET,
    "visit_count": PatternKind.VISIT_ORDINAL,
    "building_occupancy": PatternKind.SITE_OCCUPANCY,
    "monthly_14day_threshold": PatternKind.MONTHLY_THRESHOLD,
}


class ConditionKind(str, Enum):
    """Gate condition kinds understood by the condition evaluator."""

    # Generic field checks
    FIELD_NOT_EMPTY = "field_not_empty"
    FIELD_EQUALS = "field_equals"

    # Visit thresholds
    VISIT_DURATION_GTE = "visit_duration_gte"
    VISIT_DURATION_LT = "visit_duration_lt"
    AGE_LT = "age_lt"
    AGE_GTE = "age_gte"
    DAILY_VISIT_COUNT_GTE = "daily_visit_count_gte"
    IS_SECOND_VISIT = "is_second_visit"
    HAS_BUILDING = "has_building"

    # Facility capability flags
    HAS_24H_SUPPORT_SYSTEM = "has_24h_support_system"
    HAS_24H_SUPPORT_SYSTEM_ENHANCED = "has_24h_support_system_enhanced"
    HAS_EMERGENCY_SUPPORT_SYSTEM = "has_emergency_support_system"
    HAS_EMERGENCY_SUPPORT_SYSTEM_ENHANCED = "has_emergency_support_system_enhanced"

    # Record flags
    IS_DISCHARGE_DATE = "is_discharge_date"
    IS_FIRST_VISIT_OF_PLAN = "is_first_visit_of_plan"
    HAS_COLLABORATION_RECORD = "has_collaboration_record"
    IS_TERMINAL_CARE = "is_terminal_care"

    # Time of day, special management, staff
    TIME_OF_DAY = "time_of_day"
    PATIENT_HAS_SPECIAL_MANAGEMENT = "patient_has_special_management"
    SPECIAL_MANAGEMENT_TIER = "special_management_tier"
    REQUIRES_SPECIALIZED_NURSE = "requires_specialized_nurse"
    SPECIALTIES_MATCH = "specialties_match"

    # Depends on add-ons accepted earlier in the same calculation
    ADDON_ACCEPTED = "addon_accepted"

    # Require a record-store lookup
    MONTHLY_VISIT_LIMIT = "monthly_visit_limit"
    TERMINAL_CARE_REQUIREMENT = "terminal_care_requirement"


FIELD_CONDITION_KINDS = frozenset(
    {ConditionKind.FIELD_NOT_EMPTY, ConditionKind.FIELD_EQUALS}
)


class ComparisonOperator(str, Enum):
    """Threshold comparison operators for duration brackets."""

    GREATER_THAN = "gt"
    GREATER_THAN_OR_EQUAL = "gte"

    @classmethod
    def resolve(cls, name: str) -> "ComparisonOperator":
        """Accept symbolic and long-form spellings."""
        aliases = {
            ">": cls.GREATER_THAN,
            "greater_than": cls.GREATER_THAN,
            ">=": cls.GREATER_THAN_OR_EQUAL,
            "≥": cls.GREATER_THAN_OR_EQUAL,
            "greater_than_or_equal": cls.GREATER_THAN_OR_EQUAL,
        }
        return aliases.get(name) or cls(name)


class TimeBucket(str, Enum):
    """Civic time-of-day buckets for a visit start."""

    LATE_NIGHT = "late_night"  # 22:00-06:00
    EARLY_MORNING = "early_morning"  # 06:00-08:00
    NIGHT = "night"  # 18:00-22:00
    DAYTIME = "daytime"


# Older master data names one condition kind per time window. Each maps to
# a generic kind plus the value it is judged against.
CONDITION_ALIASES: dict[str, tuple[ConditionKind, object]] = {
    "time_based": (ConditionKind.TIME_OF_DAY, [b.value for b in TimeBucket]),
    "care_early_morning_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.EARLY_MORNING.value]),
    "care_night_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.NIGHT.value]),
    "care_late_night_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.LATE_NIGHT.value]),
    "medical_early_morning_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.EARLY_MORNING.value]),
    "medical_night_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.NIGHT.value]),
    "medical_late_night_time": (ConditionKind.TIME_OF_DAY, [TimeBucket.LATE_NIGHT.value]),
    "care_visit_duration_90plus": (ConditionKind.VISIT_DURATION_GTE, 90),
}


# =============================================================================
# Record Store Enums
# =============================================================================


class VisitStatus(str, Enum):
    """Lifecycle of a visit record."""

    DRAFT = "draft"
    COMPLETED = "completed"
    REVIEWED = "reviewed"


class LinkState(str, Enum):
    """How a history row got (or lost) its billing-code link."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"
    CLEARED = "cleared"


class DeathLocation(str, Enum):
    """Death-location codes used by terminal-care definitions."""

    HOME = "01"
    CARE_FACILITY = "16"


# Death locations each terminal-care add-on accepts when its condition
# carries no list of its own
TERMINAL_CARE_DEATH_LOCATIONS: dict[str, frozenset[DeathLocation]] = {
    "terminal_care_1": frozenset({DeathLocation.HOME, DeathLocation.CARE_FACILITY}),
    "terminal_care_2": frozenset({DeathLocation.CARE_FACILITY}),
    "care_terminal_care": frozenset({DeathLocation.HOME}),
}


class SpecialManagementClass(str, Enum):
    """Billing class of a special-management definition."""

    MEDICAL_HIGH = "medical_5000"
    CARE_HIGH = "care_500"


HIGH_SPECIAL_MANAGEMENT_CLASS: dict[InsuranceCategory, SpecialManagementClass] = {
    InsuranceCategory.MEDICAL: SpecialManagementClass.MEDICAL_HIGH,
    InsuranceCategory.CARE: SpecialManagementClass.CARE_HIGH,
}
