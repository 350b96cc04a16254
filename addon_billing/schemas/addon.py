"""
Pydantic Schemas for Add-on Definitions.

Definitions are rule content supplied as data; these schemas validate it
when it is loaded from the record store or from seed files.
"""

import re
from datetime import date
from typing import Any, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from addon_billing.core.enums import (
    CONDITION_ALIASES,
    FIELD_CONDITION_KINDS,
    ComparisonOperator,
    ConditionKind,
    InsuranceCategory,
    PatternKind,
    TimeBucket,
    ValueType,
)
from addon_billing.schemas.context import CONTEXT_FIELD_NAMES
from addon_billing.utils.errors import ConfigurationError, UnknownPatternError

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Older master data spells some context attributes differently
_FIELD_ALIASES = {
    "building_id": "site_id",
    "death_place_code": "death_location_code",
    "specialist_certifications": "staff_qualifications",
    "special_management_types": "special_management_categories",
    "insurance_type": "insurance_category",
    "daily_visit_count": "daily_visit_ordinal",
}


def normalize_field_name(name: str) -> str:
    """Convert camelCase master-data field names to context attribute names."""
    snake = _CAMEL_BOUNDARY.sub("_", name).lower()
    return _FIELD_ALIASES.get(snake, snake)


def _expand_condition_alias(data: dict[str, Any]) -> dict[str, Any]:
    """
    Rewrite a per-window legacy kind to its generic kind and value.

    A row expecting ``false`` selects the complement: the other time
    buckets, or a duration below the threshold.
    """
    kind, value = CONDITION_ALIASES[data["kind"]]
    negated = data.get("operator") == "equals" and data.get("value") is False
    if negated and kind == ConditionKind.TIME_OF_DAY:
        value = [b.value for b in TimeBucket if b.value not in value]
    elif negated and kind == ConditionKind.VISIT_DURATION_GTE:
        kind = ConditionKind.VISIT_DURATION_LT
    return {"kind": kind.value, "value": list(value) if isinstance(value, list) else value, "operator": None}


# =============================================================================
# Conditions
# =============================================================================


class ConditionSpec(BaseModel):
    """One gate condition of a definition."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(..., min_length=1, description="Condition kind")
    field: Optional[str] = Field(default=None, description="Context attribute for field checks")
    value: Any = Field(default=None, description="Threshold, expected value or allow-list")
    operator: Optional[str] = Field(default=None, description="'equals' enables the XNOR check")

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """
        Accept older master data: the 'pattern' and 'type' keys, and the
        per-window kinds such as 'medical_late_night_time'.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "kind" not in data:
            legacy = data.pop("pattern", None) or data.pop("type", None)
            if legacy is not None:
                data["kind"] = legacy
        if data.get("kind") in CONDITION_ALIASES:
            data.update(_expand_condition_alias(data))
        return data

    @field_validator("field")
    @classmethod
    def normalize_field(cls, v: Optional[str]) -> Optional[str]:
        """Map master-data spellings onto context attribute names."""
        return normalize_field_name(v) if v else v

    @model_validator(mode="after")
    def field_exists_on_context(self) -> "ConditionSpec":
        """Field checks must name a real context attribute."""
        if self.kind in {k.value for k in FIELD_CONDITION_KINDS}:
            if not self.field:
                raise ValueError(f"Condition '{self.kind}' requires a field")
            if self.field not in CONTEXT_FIELD_NAMES:
                raise ValueError(f"Unknown context field '{self.field}' in condition '{self.kind}'")
        return self

    @property
    def known_kind(self) -> Optional[ConditionKind]:
        """The condition kind, or None if the engine does not know it."""
        try:
            return ConditionKind(self.kind)
        except ValueError:
            return None


# =============================================================================
# Pattern Configs
# =============================================================================


class TimeOfDayConfig(BaseModel):
    """Points per time-of-day bucket."""

    model_config = ConfigDict(extra="ignore")

    late_night: int = 0
    early_morning: int = 0
    night: int = 0
    daytime: int = 0


class DurationBracket(BaseModel):
    """Duration threshold entry."""

    duration_minutes: int = Field(..., ge=0)
    operator: ComparisonOperator = ComparisonOperator.GREATER_THAN_OR_EQUAL
    points: int
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def accept_camel_case(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = {normalize_field_name(k): v for k, v in data.items()}
            if isinstance(data.get("operator"), str):
                data["operator"] = ComparisonOperator.resolve(data["operator"])
        return data


class DurationConfig(BaseModel):
    """Descending duration thresholds with a fallback value."""

    conditions: list[DurationBracket] = Field(default_factory=list)
    default_points: int = 0

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Translate legacy ``duration_<N>: points`` keys into >= brackets."""
        if not isinstance(data, dict):
            return data
        data = {normalize_field_name(k): v for k, v in data.items()}
        legacy = [
            {"duration_minutes": int(key[len("duration_"):]), "operator": "gte", "points": points, "description": key}
            for key, points in data.items()
            if key.startswith("duration_") and key[len("duration_"):].isdigit()
        ]
        if legacy and "conditions" not in data:
            data["conditions"] = legacy
        return {k: v for k, v in data.items() if k in ("conditions", "default_points")}

    def sorted_brackets(self) -> list[DurationBracket]:
        """Brackets from the longest threshold down."""
        return sorted(self.conditions, key=lambda b: b.duration_minutes, reverse=True)


class AgeBracket(BaseModel):
    """Half-open age range [min_age, max_age)."""

    key: str
    min_age: int
    max_age: Optional[int] = None
    points: int

    def contains(self, age: int) -> bool:
        return age >= self.min_age and (self.max_age is None or age < self.max_age)


class AgeBracketConfig(BaseModel):
    """Age brackets parsed from ``age_<min>`` / ``age_<min>_<max>`` keys."""

    brackets: list[AgeBracket] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def parse_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "brackets" in data:
            return data
        brackets = []
        for key, points in data.items():
            match = re.fullmatch(r"age_(\d+)(?:_(\d+))?", key)
            if not match:
                continue
            brackets.append(
                {
                    "key": key,
                    "min_age": int(match.group(1)),
                    "max_age": int(match.group(2)) if match.group(2) else None,
                    "points": points,
                }
            )
        return {"brackets": brackets}

    @field_validator("brackets")
    @classmethod
    def sort_by_min(cls, v: list[AgeBracket]) -> list[AgeBracket]:
        return sorted(v, key=lambda b: b.min_age)


class VisitOrdinalConfig(BaseModel):
    """Points for the 1st, 2nd and 3rd-or-later visit of the day."""

    model_config = ConfigDict(extra="ignore")

    visit_1: int = 0
    visit_2: int = 0
    visit_3_plus: int = 0


class SiteOccupancyConfig(BaseModel):
    """Points by same-site occupancy tier."""

    model_config = ConfigDict(extra="ignore")

    occupancy_1_2: int = 0
    occupancy_3_plus: int = 0


class MonthlyThresholdConfig(BaseModel):
    """Points up to and after the N-th qualifying visit of the month."""

    threshold_day: int = Field(default=14, ge=1)
    up_to_points: int
    after_points: int

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Translate ``up_to_<N>`` / ``after_<N>`` keys."""
        if not isinstance(data, dict) or "up_to_points" in data:
            return data
        data = dict(data)
        for key in list(data):
            match = re.fullmatch(r"(up_to|after)_(\d+)", key)
            if match:
                data.setdefault("threshold_day", int(match.group(2)))
                data[f"{match.group(1)}_points"] = data.pop(key)
        return data


PatternConfig = Union[
    TimeOfDayConfig,
    DurationConfig,
    AgeBracketConfig,
    VisitOrdinalConfig,
    SiteOccupancyConfig,
    MonthlyThresholdConfig,
]

PATTERN_CONFIG_MODELS: dict[PatternKind, type[BaseModel]] = {
    PatternKind.TIME_OF_DAY: TimeOfDayConfig,
    PatternKind.DURATION: DurationConfig,
    PatternKind.AGE_BRACKET: AgeBracketConfig,
    PatternKind.VISIT_ORDINAL: VisitOrdinalConfig,
    PatternKind.SITE_OCCUPANCY: SiteOccupancyConfig,
    PatternKind.MONTHLY_THRESHOLD: MonthlyThresholdConfig,
}


def parse_pattern_config(
    pattern_kind: str,
    raw: Optional[dict[str, Any]],
    code: Optional[str] = None,
) -> tuple[PatternKind, PatternConfig]:
    """
    Resolve a pattern kind and validate its config.

    Raises:
        UnknownPatternError: pattern kind is not recognised
        ConfigurationError: config does not match the pattern's schema
    """
    try:
        kind = PatternKind.resolve(pattern_kind)
    except ValueError:
        raise UnknownPatternError(pattern_kind, code=code)

    try:
        config = PATTERN_CONFIG_MODELS[kind].model_validate(raw or {})
    except ValidationError as e:
        raise ConfigurationError(f"Invalid {kind.value} config: {e}", code=code) from e
    return kind, config  # type: ignore[return-value]


# =============================================================================
# Definitions
# =============================================================================


class AddOnDefinitionSchema(BaseModel):
    """Validated, read-only view of an add-on definition."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    code: str = Field(..., min_length=1)
    name: str
    version: str = "1"
    description: Optional[str] = None

    # Scope
    facility_id: Optional[UUID] = None
    insurance_category: InsuranceCategory

    # Validity window (inclusive)
    valid_from: date
    valid_to: Optional[date] = None

    # Value
    value_type: ValueType
    fixed_points: Optional[int] = Field(default=None, ge=0)
    pattern_kind: Optional[str] = None
    pattern_config: dict[str, Any] = Field(default_factory=dict)

    # Gating
    conditions: list[ConditionSpec] = Field(default_factory=list)
    can_combine_with_only: Optional[list[str]] = None
    cannot_combine_with: Optional[list[str]] = None
    depends_on: list[str] = Field(default_factory=list)

    # Priority
    evaluation_order: Optional[int] = None
    is_active: bool = True

    @field_validator("conditions", mode="before")
    @classmethod
    def wrap_single_condition(cls, v: Any) -> Any:
        """Older rows store a single condition object instead of a list."""
        if v is None:
            return []
        if isinstance(v, dict):
            return [v]
        return v

    @field_validator("depends_on", mode="before")
    @classmethod
    def default_depends_on(cls, v: Any) -> Any:
        return v or []

    @field_validator("pattern_config", mode="before")
    @classmethod
    def default_pattern_config(cls, v: Any) -> Any:
        return v or {}

    @model_validator(mode="after")
    def check_value_and_window(self) -> "AddOnDefinitionSchema":
        """Validate the value type and the validity window."""
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise ValueError("valid_to must be on or after valid_from")
        if self.value_type == ValueType.FIXED and self.fixed_points is None:
            raise ValueError("Fixed definitions require fixed_points")
        if self.value_type == ValueType.CONDITIONAL and not self.pattern_kind:
            raise ValueError("Conditional definitions require pattern_kind")
        return self

    def is_effective_on(self, visit_date: date) -> bool:
        """Check the inclusive validity window."""
        if visit_date < self.valid_from:
            return False
        return self.valid_to is None or visit_date <= self.valid_to

    def applies_to(self, facility_id: UUID, insurance_category: InsuranceCategory) -> bool:
        """Check scope: own facility or global, same insurance category."""
        if self.insurance_category != insurance_category:
            return False
        return self.facility_id is None or self.facility_id == facility_id
