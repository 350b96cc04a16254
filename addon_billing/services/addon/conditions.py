"""
Condition Evaluator.

Evaluates one declarative gate condition of an add-on definition against
a calculation context. Provides:
- Pure checks on context fields, thresholds and record flags
- Facility capability and staff qualification checks
- Record-store backed checks (monthly occurrence cap, terminal care)

Unknown condition kinds and missing context values fail the condition;
they never raise. Record-store errors propagate to the caller, which
skips the definition.
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Iterable, Optional

from addon_billing.core.config import AddOnEngineSettings, get_settings
from addon_billing.core.enums import TERMINAL_CARE_DEATH_LOCATIONS, ConditionKind, TimeBucket
from addon_billing.schemas.addon import AddOnDefinitionSchema, ConditionSpec
from addon_billing.schemas.context import CalculationContext, time_bucket_for
from addon_billing.services.addon.stores import RecordStore

logger = logging.getLogger(__name__)


# Specialty training names recorded on staff, mapped to the care type
# recorded on the visit
SPECIALTY_CARE_TYPES: dict[str, str] = {
    "緩和ケア": "palliative_care",
    "褥瘡ケア": "pressure_ulcer",
    "人工肛門・人工膀胱ケア": "stoma_care",
    "特定行為研修": "specific_procedures",
}

# Kinds that judge ``value`` themselves and never take the equals/XNOR path
_SELF_COMPARING_KINDS = frozenset({ConditionKind.FIELD_EQUALS, ConditionKind.SPECIALTIES_MATCH})


@dataclass
class ConditionResult:
    """Result of evaluating one condition."""

    passed: bool
    reason: str
    metadata: dict[str, Any] = field(default_factory=dict)


def month_bounds(day: date) -> tuple[date, date]:
    """First and last day of the calendar month containing ``day``."""
    last = calendar.monthrange(day.year, day.month)[1]
    return day.replace(day=1), day.replace(day=last)


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (list, tuple, set, frozenset, dict)) and len(value) == 0


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def _flag(passed: bool, yes: str, no: str) -> ConditionResult:
    return ConditionResult(passed=passed, reason=yes if passed else no)


def _death_locations_for(spec: ConditionSpec, code: str) -> list[str]:
    """Allowed death-location codes: the condition's own list, else the add-on's default."""
    configured = [str(v) for v in _as_list(spec.value) if not isinstance(v, bool)]
    if configured:
        return configured
    return sorted(loc.value for loc in TERMINAL_CARE_DEATH_LOCATIONS.get(code, ()))


SyncHandler = Callable[[ConditionSpec, CalculationContext], ConditionResult]
AsyncHandler = Callable[
    [ConditionSpec, CalculationContext, AddOnDefinitionSchema], Awaitable[ConditionResult]
]


class ConditionEvaluator:
    """
    Dispatches a condition spec to its kind's check.

    Usage:
        evaluator = ConditionEvaluator(record_store)
        result = await evaluator.evaluate(spec, context, definition, accepted_codes)
    """

    def __init__(
        self,
        records: RecordStore,
        settings: Optional[AddOnEngineSettings] = None,
    ):
        self._records = records
        self._settings = settings or get_settings()

        self._sync_handlers: dict[ConditionKind, SyncHandler] = {
            ConditionKind.FIELD_NOT_EMPTY: self._field_not_empty,
            ConditionKind.FIELD_EQUALS: self._field_equals,
            ConditionKind.VISIT_DURATION_GTE: self._visit_duration_gte,
            ConditionKind.VISIT_DURATION_LT: self._visit_duration_lt,
            ConditionKind.AGE_LT: self._age_lt,
            ConditionKind.AGE_GTE: self._age_gte,
            ConditionKind.DAILY_VISIT_COUNT_GTE: self._daily_visit_count_gte,
            ConditionKind.IS_SECOND_VISIT: lambda s, c: _flag(
                c.is_second_visit, "Second visit of the day", "Not the second visit of the day"
            ),
            ConditionKind.HAS_BUILDING: lambda s, c: _flag(
                c.site_id is not None, "Patient has a site assignment", "Patient has no site assignment"
            ),
            ConditionKind.HAS_24H_SUPPORT_SYSTEM: lambda s, c: _flag(
                c.has_24h_support_system, "24h support system in place", "No 24h support system"
            ),
            ConditionKind.HAS_24H_SUPPORT_SYSTEM_ENHANCED: self._has_24h_enhanced,
            ConditionKind.HAS_EMERGENCY_SUPPORT_SYSTEM: lambda s, c: _flag(
                c.has_emergency_support_system,
                "Emergency support system in place",
                "No emergency support system",
            ),
            ConditionKind.HAS_EMERGENCY_SUPPORT_SYSTEM_ENHANCED: lambda s, c: _flag(
                c.has_emergency_support_system_enhanced,
                "Enhanced emergency support system in place",
                "No enhanced emergency support system",
            ),
            ConditionKind.IS_DISCHARGE_DATE: lambda s, c: _flag(
                c.is_discharge_date, "Visit on discharge date", "Not the discharge date"
            ),
            ConditionKind.IS_FIRST_VISIT_OF_PLAN: lambda s, c: _flag(
                c.is_first_visit_of_plan, "First visit of the care plan", "Not the first visit of the plan"
            ),
            ConditionKind.HAS_COLLABORATION_RECORD: lambda s, c: _flag(
                c.has_collaboration_record, "Collaboration record present", "No collaboration record"
            ),
            ConditionKind.IS_TERMINAL_CARE: lambda s, c: _flag(
                c.is_terminal_care, "Terminal care provided", "No terminal care"
            ),
            ConditionKind.TIME_OF_DAY: self._time_of_day,
            ConditionKind.PATIENT_HAS_SPECIAL_MANAGEMENT: self._patient_has_special_management,
            ConditionKind.SPECIAL_MANAGEMENT_TIER: self._special_management_tier,
            ConditionKind.REQUIRES_SPECIALIZED_NURSE: self._requires_specialized_nurse,
            ConditionKind.SPECIALTIES_MATCH: self._specialties_match,
        }
        self._async_handlers: dict[ConditionKind, AsyncHandler] = {
            ConditionKind.MONTHLY_VISIT_LIMIT: self._monthly_visit_limit,
            ConditionKind.TERMINAL_CARE_REQUIREMENT: self._terminal_care_requirement,
        }

    async def evaluate(
        self,
        spec: ConditionSpec,
        context: CalculationContext,
        definition: AddOnDefinitionSchema,
        accepted_codes: Iterable[str] = (),
    ) -> ConditionResult:
        """
        Evaluate one condition.

        Args:
            spec: Condition to evaluate
            context: Visit snapshot
            definition: Definition the condition belongs to
            accepted_codes: Codes accepted earlier in the same calculation

        Returns:
            ConditionResult with pass/fail and an explanatory reason
        """
        kind = spec.known_kind
        if kind is None:
            logger.warning(f"Unknown condition kind '{spec.kind}' on {definition.code}")
            return ConditionResult(passed=False, reason=f"Unknown condition kind: {spec.kind}")

        if kind == ConditionKind.ADDON_ACCEPTED:
            result = self._addon_accepted(spec, set(accepted_codes))
        elif kind in self._async_handlers:
            result = await self._async_handlers[kind](spec, context, definition)
        else:
            result = self._sync_handlers[kind](spec, context)

        return self._apply_expectation(kind, spec, result)

    def _apply_expectation(
        self,
        kind: ConditionKind,
        spec: ConditionSpec,
        result: ConditionResult,
    ) -> ConditionResult:
        """XNOR the evaluated outcome with an explicit expected boolean."""
        if kind in _SELF_COMPARING_KINDS or spec.operator != "equals" or not isinstance(spec.value, bool):
            return result

        if result.passed == spec.value:
            return ConditionResult(
                passed=True,
                reason=f"{result.reason} (expected: {spec.value})",
                metadata=result.metadata,
            )
        return ConditionResult(
            passed=False,
            reason=f"Expectation not met: expected={spec.value}, actual={result.passed} ({result.reason})",
            metadata=result.metadata,
        )

    # =========================================================================
    # Field checks
    # =========================================================================

    def _field_not_empty(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        value = getattr(context, spec.field or "", None)
        passed = not _is_empty(value)
        return _flag(passed, f"{spec.field} is not empty", f"{spec.field} is empty")

    def _field_equals(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        value = getattr(context, spec.field or "", None)
        passed = value == spec.value
        return _flag(
            passed,
            f"{spec.field} equals {spec.value}",
            f"{spec.field} ({value}) does not equal {spec.value}",
        )

    # =========================================================================
    # Thresholds
    # =========================================================================

    def _visit_duration_gte(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        minutes = context.duration_minutes
        if minutes is None:
            return ConditionResult(passed=False, reason="Visit start/end time not recorded")
        passed = minutes >= spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Visit duration {minutes}min {'>=' if passed else '<'} {spec.value}min",
            metadata={"duration_minutes": minutes},
        )

    def _visit_duration_lt(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        minutes = context.duration_minutes
        if minutes is None:
            return ConditionResult(passed=False, reason="Visit start/end time not recorded")
        passed = minutes < spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Visit duration {minutes}min {'<' if passed else '>='} {spec.value}min",
            metadata={"duration_minutes": minutes},
        )

    def _age_lt(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        if context.patient_age is None:
            return ConditionResult(passed=False, reason="Patient age not available")
        passed = context.patient_age < spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Patient age {context.patient_age} {'<' if passed else '>='} {spec.value}",
        )

    def _age_gte(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        if context.patient_age is None:
            return ConditionResult(passed=False, reason="Patient age not available")
        passed = context.patient_age >= spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Patient age {context.patient_age} {'>=' if passed else '<'} {spec.value}",
        )

    def _daily_visit_count_gte(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        count = context.daily_visit_ordinal
        passed = count >= spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Visit {count} of the day {'>=' if passed else '<'} {spec.value}",
            metadata={"visit_count": count, "min_count": spec.value},
        )

    # =========================================================================
    # Facility, time of day, special management and staff
    # =========================================================================

    def _has_24h_enhanced(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        required = self._settings.BURDEN_REDUCTION_MIN_MEASURES
        measures = len(context.burden_reduction_measures)
        if not context.has_24h_support_system_enhanced:
            return ConditionResult(passed=False, reason="No enhanced 24h support system")
        if measures < required:
            return ConditionResult(
                passed=False,
                reason=f"Enhanced 24h support system lacks burden-reduction measures ({measures}/{required})",
            )
        return ConditionResult(
            passed=True,
            reason=f"Enhanced 24h support system with {measures} burden-reduction measures",
        )

    def _time_of_day(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        local = context.local_start(self._settings.local_tz)
        if local is None:
            return ConditionResult(passed=False, reason="Visit start time not recorded")
        bucket = time_bucket_for(local)
        wanted = {v.value if isinstance(v, TimeBucket) else str(v) for v in _as_list(spec.value)}
        passed = bucket.value in wanted
        return ConditionResult(
            passed=passed,
            reason=f"Start {local:%H:%M} is {bucket.value}" + ("" if passed else f", not in {sorted(wanted)}"),
            metadata={"time_bucket": bucket.value},
        )

    def _patient_has_special_management(
        self, spec: ConditionSpec, context: CalculationContext
    ) -> ConditionResult:
        categories = list(context.special_management_categories)
        wanted = _as_list(spec.value) if not isinstance(spec.value, bool) else []
        if wanted:
            categories = [c for c in categories if c in wanted]
        if categories:
            return ConditionResult(
                passed=True,
                reason=f"Special management: {', '.join(categories)}",
                metadata={"categories": categories},
            )
        return ConditionResult(passed=False, reason="Patient has no special management")

    def _special_management_tier(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        tier = context.special_management_tier
        if tier is None:
            return ConditionResult(passed=False, reason="No special management tier")
        passed = tier == spec.value
        return ConditionResult(
            passed=passed,
            reason=f"Special management tier {tier}" + ("" if passed else f" is not {spec.value}"),
            metadata={"tier": tier},
        )

    def _requires_specialized_nurse(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        if context.staff_id is None:
            return ConditionResult(passed=False, reason="No assigned nurse")
        qualifications = list(context.staff_qualifications)
        if qualifications:
            return ConditionResult(passed=True, reason=f"Specialist qualifications: {', '.join(qualifications)}")
        return ConditionResult(passed=False, reason="Assigned nurse has no specialist training")

    def _specialties_match(self, spec: ConditionSpec, context: CalculationContext) -> ConditionResult:
        specialties = _as_list(spec.value)
        if not specialties:
            return ConditionResult(passed=False, reason="No specialty list configured")
        care_type = context.specialist_care_type
        if not care_type:
            return ConditionResult(passed=False, reason="No specialist care recorded")
        if context.staff_id is None:
            return ConditionResult(passed=False, reason="No assigned nurse")
        held = set(context.staff_qualifications)
        if not held:
            return ConditionResult(passed=False, reason="Assigned nurse has no specialist qualification")

        for specialty in specialties:
            mapped = SPECIALTY_CARE_TYPES.get(specialty, specialty)
            if mapped == care_type and specialty in held:
                return ConditionResult(passed=True, reason=f"Specialty matches: {specialty}")
        return ConditionResult(
            passed=False,
            reason=f"Specialty mismatch (care: {care_type}, qualifications: {', '.join(sorted(held))})",
        )

    # =========================================================================
    # Same-visit dependencies
    # =========================================================================

    def _addon_accepted(self, spec: ConditionSpec, accepted: set[str]) -> ConditionResult:
        required = [str(c) for c in _as_list(spec.value)]
        if not required:
            return ConditionResult(passed=False, reason="No prerequisite add-on configured")
        present = [c for c in required if c in accepted]
        passed = bool(present)
        return ConditionResult(
            passed=passed,
            reason=f"Add-on {present[0]} accepted on this visit" if passed else f"None of {required} accepted on this visit",
        )

    # =========================================================================
    # Record-store backed checks
    # =========================================================================

    async def _monthly_visit_limit(
        self,
        spec: ConditionSpec,
        context: CalculationContext,
        definition: AddOnDefinitionSchema,
    ) -> ConditionResult:
        cap = spec.value
        if not isinstance(cap, int) or isinstance(cap, bool):
            return ConditionResult(passed=False, reason=f"Invalid monthly limit: {cap!r}")

        start, end = month_bounds(context.visit_date)
        count = await self._records.count_addon_occurrences(
            patient_id=context.patient_id,
            code=definition.code,
            start=start,
            end=end,
            statuses=self._settings.COUNTED_VISIT_STATUSES,
            exclude_visit_id=context.visit_id,
        )
        passed = count < cap
        return ConditionResult(
            passed=passed,
            reason=f"{definition.code} used {count} times this month (limit {cap})",
            metadata={"current_count": count, "monthly_limit": cap},
        )

    async def _terminal_care_requirement(
        self,
        spec: ConditionSpec,
        context: CalculationContext,
        definition: AddOnDefinitionSchema,
    ) -> ConditionResult:
        if context.death_date is None:
            return ConditionResult(passed=False, reason="Patient date of death not recorded")
        if context.visit_date != context.death_date:
            return ConditionResult(passed=False, reason="Terminal care is only billable on the date of death")

        allowed_locations = _death_locations_for(spec, definition.code)
        if not allowed_locations:
            return ConditionResult(passed=False, reason=f"No death-location list for {definition.code}")
        if context.death_location_code not in allowed_locations:
            return ConditionResult(
                passed=False,
                reason=f"Death location {context.death_location_code!r} not in {allowed_locations}",
            )

        window_start = context.death_date - timedelta(days=self._settings.TERMINAL_CARE_WINDOW_DAYS)
        visits = await self._records.list_patient_visits(
            patient_id=context.patient_id,
            start=window_start,
            end=context.death_date,
        )
        count = sum(1 for v in visits if v.is_terminal_care and v.id != context.visit_id)
        if context.is_terminal_care:
            count += 1

        required = self._settings.TERMINAL_CARE_MIN_VISITS
        metadata = {
            "visit_count": count,
            "required_visits": required,
            "period": f"{window_start.isoformat()}/{context.death_date.isoformat()}",
        }
        if count < required:
            return ConditionResult(
                passed=False,
                reason=f"Too few terminal-care visits before death ({count}/{required})",
                metadata=metadata,
            )
        return ConditionResult(
            passed=True,
            reason=f"Terminal-care requirement met ({count} visits)",
            metadata=metadata,
        )
