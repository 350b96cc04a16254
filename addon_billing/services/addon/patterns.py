"""
Pattern Evaluator.

Computes the point value of conditional add-ons:
- time_of_day: civic start-time bucket
- duration: descending threshold brackets with a default
- age_bracket: half-open age ranges
- visit_ordinal: 1st, 2nd or 3rd-or-later visit of the day
- site_occupancy: distinct same-site patients on the visit date (record store)
- monthly_threshold: qualifying visits so far this month (record store)

An unknown pattern kind or a malformed config raises a ConfigurationError
for that single definition. A context value the pattern needs but does not
have yields 0 points.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from addon_billing.core.config import AddOnEngineSettings, get_settings
from addon_billing.core.enums import ComparisonOperator, PatternKind, TimeBucket
from addon_billing.schemas.addon import (
    AgeBracketConfig,
    DurationConfig,
    MonthlyThresholdConfig,
    SiteOccupancyConfig,
    TimeOfDayConfig,
    VisitOrdinalConfig,
    parse_pattern_config,
)
from addon_billing.schemas.context import CalculationContext, time_bucket_for
from addon_billing.services.addon.conditions import month_bounds
from addon_billing.services.addon.stores import RecordStore

logger = logging.getLogger(__name__)

# Same-site occupancy at or below this count uses the low tier
LOW_OCCUPANCY_MAX = 2


@dataclass
class PatternResult:
    """Computed value of a conditional add-on."""

    points: int
    matched_bucket: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


class PatternEvaluator:
    """
    Resolve a conditional definition's points.

    Usage:
        evaluator = PatternEvaluator(record_store)
        result = await evaluator.evaluate("duration", {"duration_90": 500}, context)
    """

    def __init__(
        self,
        records: RecordStore,
        settings: Optional[AddOnEngineSettings] = None,
    ):
        self._records = records
        self._settings = settings or get_settings()

    async def evaluate(
        self,
        pattern_kind: str,
        pattern_config: Optional[dict[str, Any]],
        context: CalculationContext,
        code: Optional[str] = None,
    ) -> PatternResult:
        """
        Evaluate a pattern.

        Args:
            pattern_kind: Pattern name (legacy names accepted)
            pattern_config: Raw pattern parameters
            context: Visit snapshot
            code: Add-on code, for error messages

        Raises:
            UnknownPatternError: pattern kind is not recognised
            ConfigurationError: config does not validate
        """
        kind, config = parse_pattern_config(pattern_kind, pattern_config, code=code)

        if kind == PatternKind.TIME_OF_DAY:
            return self._time_of_day(config, context)  # type: ignore[arg-type]
        if kind == PatternKind.DURATION:
            return self._duration(config, context)  # type: ignore[arg-type]
        if kind == PatternKind.AGE_BRACKET:
            return self._age_bracket(config, context)  # type: ignore[arg-type]
        if kind == PatternKind.VISIT_ORDINAL:
            return self._visit_ordinal(config, context)  # type: ignore[arg-type]
        if kind == PatternKind.SITE_OCCUPANCY:
            return await self._site_occupancy(config, context)  # type: ignore[arg-type]
        return await self._monthly_threshold(config, context)  # type: ignore[arg-type]

    # =========================================================================
    # Pure patterns
    # =========================================================================

    def _time_of_day(self, config: TimeOfDayConfig, context: CalculationContext) -> PatternResult:
        local = context.local_start(self._settings.local_tz)
        if local is None:
            return PatternResult(points=0, metadata={"reason": "Visit start time not recorded"})

        bucket = time_bucket_for(local)
        points = {
            TimeBucket.LATE_NIGHT: config.late_night,
            TimeBucket.EARLY_MORNING: config.early_morning,
            TimeBucket.NIGHT: config.night,
            TimeBucket.DAYTIME: config.daytime,
        }[bucket]
        return PatternResult(
            points=points,
            matched_bucket=bucket.value,
            metadata={"local_start": local.isoformat(), "hour": local.hour},
        )

    def _duration(self, config: DurationConfig, context: CalculationContext) -> PatternResult:
        minutes = context.duration_minutes
        if minutes is None:
            return PatternResult(points=0, metadata={"reason": "Visit start/end time not recorded"})

        for bracket in config.sorted_brackets():
            if bracket.operator == ComparisonOperator.GREATER_THAN:
                matched = minutes > bracket.duration_minutes
            else:
                matched = minutes >= bracket.duration_minutes
            if matched:
                return PatternResult(
                    points=bracket.points,
                    matched_bucket=bracket.description or f"duration_{bracket.duration_minutes}",
                    metadata={
                        "duration_minutes": minutes,
                        "threshold": bracket.duration_minutes,
                        "operator": bracket.operator.value,
                    },
                )

        return PatternResult(
            points=config.default_points,
            matched_bucket="below_threshold",
            metadata={"duration_minutes": minutes},
        )

    def _age_bracket(self, config: AgeBracketConfig, context: CalculationContext) -> PatternResult:
        age = context.patient_age
        if age is None:
            return PatternResult(points=0, metadata={"reason": "Patient age not available"})

        for bracket in config.brackets:
            if bracket.contains(age):
                return PatternResult(points=bracket.points, matched_bucket=bracket.key, metadata={"patient_age": age})
        return PatternResult(points=0, matched_bucket="no_match", metadata={"patient_age": age})

    def _visit_ordinal(self, config: VisitOrdinalConfig, context: CalculationContext) -> PatternResult:
        ordinal = context.daily_visit_ordinal
        if ordinal == 1:
            bucket, points = "visit_1", config.visit_1
        elif ordinal == 2:
            bucket, points = "visit_2", config.visit_2
        else:
            bucket, points = "visit_3_plus", config.visit_3_plus
        return PatternResult(points=points, matched_bucket=bucket, metadata={"visit_count": ordinal})

    # =========================================================================
    # Record-store backed patterns
    # =========================================================================

    async def _site_occupancy(self, config: SiteOccupancyConfig, context: CalculationContext) -> PatternResult:
        if context.site_id is None:
            logger.warning(
                f"No site assigned to patient {context.patient_id}; using low-occupancy tier"
            )
            return PatternResult(
                points=config.occupancy_1_2,
                matched_bucket="occupancy_1_2",
                metadata={"occupancy": 1, "site_id": None, "defaulted": True},
            )

        occupancy = await self._records.count_site_patients(
            facility_id=context.facility_id,
            site_id=context.site_id,
            visit_date=context.visit_date,
        )
        low = occupancy <= LOW_OCCUPANCY_MAX
        return PatternResult(
            points=config.occupancy_1_2 if low else config.occupancy_3_plus,
            matched_bucket="occupancy_1_2" if low else "occupancy_3_plus",
            metadata={"occupancy": occupancy, "site_id": str(context.site_id)},
        )

    async def _monthly_threshold(self, config: MonthlyThresholdConfig, context: CalculationContext) -> PatternResult:
        month_start, _ = month_bounds(context.visit_date)
        visits = await self._records.list_patient_visits(
            patient_id=context.patient_id,
            start=month_start,
            end=context.visit_date,
        )
        count = sum(1 for v in visits if v.is_emergency and v.id != context.visit_id)
        if context.emergency_visit_reason:
            count += 1

        up_to = count <= config.threshold_day
        return PatternResult(
            points=config.up_to_points if up_to else config.after_points,
            matched_bucket=f"up_to_{config.threshold_day}" if up_to else f"after_{config.threshold_day}",
            metadata={
                "emergency_visit_count": count,
                "threshold_day": config.threshold_day,
                "month_start": month_start.isoformat(),
            },
        )
