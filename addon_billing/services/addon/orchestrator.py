"""
Add-on Calculation Orchestrator.

Drives the per-visit evaluation loop:
1. Select the effective definitions
2. Order them by dependency level, evaluation order and id
3. For each: combination gate, condition gate, point value
4. Accept definitions with positive points

A failure inside one definition is logged and that definition skipped;
it never aborts the rest of the visit.
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from addon_billing.core.config import AddOnEngineSettings, get_settings
from addon_billing.core.enums import ConditionKind, ValueType
from addon_billing.schemas.addon import AddOnDefinitionSchema
from addon_billing.schemas.context import CalculationContext
from addon_billing.services.addon.combination import check_combination
from addon_billing.services.addon.conditions import ConditionEvaluator
from addon_billing.services.addon.patterns import PatternEvaluator
from addon_billing.services.addon.selector import DefinitionSelector
from addon_billing.services.addon.stores import RecordStore
from addon_billing.utils.errors import ConfigurationError

module_logger = logging.getLogger(__name__)


@dataclass
class CalculationResult:
    """One accepted add-on for a visit."""

    code: str
    name: str
    definition_id: UUID
    points: int
    definition_version: str
    conditions_passed: list[str] = field(default_factory=list)
    trail: dict[str, Any] = field(default_factory=dict)

    def as_comparable(self) -> dict[str, Any]:
        """Everything except the calculation timestamp."""
        return {
            "code": self.code,
            "name": self.name,
            "definition_id": self.definition_id,
            "points": self.points,
            "definition_version": self.definition_version,
            "conditions_passed": list(self.conditions_passed),
            "trail": {k: v for k, v in self.trail.items() if k != "timestamp"},
        }


def prerequisite_codes(definition: AddOnDefinitionSchema) -> set[str]:
    """Codes a definition waits for: declared ones plus addon_accepted conditions."""
    codes = set(definition.depends_on)
    for spec in definition.conditions:
        if spec.known_kind == ConditionKind.ADDON_ACCEPTED and spec.value:
            values = spec.value if isinstance(spec.value, (list, tuple)) else [spec.value]
            codes.update(str(v) for v in values)
    return codes


def dependency_levels(
    definitions: list[AddOnDefinitionSchema],
) -> tuple[dict[UUID, int], list[AddOnDefinitionSchema]]:
    """
    Assign each definition a dependency level.

    Level 0 has no prerequisite among the candidates; otherwise the level is
    one more than the highest level of its prerequisites.

    Returns:
        (levels by definition id, definitions that cannot be ordered because
        they are in or behind a dependency cycle)
    """
    by_code: dict[str, list[AddOnDefinitionSchema]] = defaultdict(list)
    for d in definitions:
        by_code[d.code].append(d)

    dependents: dict[UUID, list[UUID]] = defaultdict(list)
    indegree: dict[UUID, int] = {d.id: 0 for d in definitions}
    for d in definitions:
        for code in prerequisite_codes(d):
            if code == d.code:
                continue
            for prereq in by_code.get(code, []):
                dependents[prereq.id].append(d.id)
                indegree[d.id] += 1

    levels: dict[UUID, int] = {}
    queue = deque(d.id for d in definitions if indegree[d.id] == 0)
    for def_id in queue:
        levels[def_id] = 0
    while queue:
        current = queue.popleft()
        for dependent in dependents[current]:
            levels[dependent] = max(levels.get(dependent, 0), levels[current] + 1)
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                queue.append(dependent)

    unordered = [d for d in definitions if indegree[d.id] > 0]
    for d in unordered:
        levels.pop(d.id, None)
    return levels, unordered


class AddOnCalculator:
    """
    Calculate the add-ons that apply to one visit.

    Usage:
        calculator = AddOnCalculator(record_store)
        results = await calculator.calculate(context)
    """

    def __init__(
        self,
        records: RecordStore,
        settings: Optional[AddOnEngineSettings] = None,
        logger: Optional[logging.Logger] = None,
        selector: Optional[DefinitionSelector] = None,
        conditions: Optional[ConditionEvaluator] = None,
        patterns: Optional[PatternEvaluator] = None,
    ):
        self._settings = settings or get_settings()
        self._logger = logger or module_logger
        self._selector = selector or DefinitionSelector(records, self._settings.DEFAULT_EVALUATION_ORDER)
        self._conditions = conditions or ConditionEvaluator(records, self._settings)
        self._patterns = patterns or PatternEvaluator(records, self._settings)

    def order(self, definitions: list[AddOnDefinitionSchema]) -> list[AddOnDefinitionSchema]:
        """Sort by dependency level, then evaluation order and id; drop cyclic ones."""
        levels, unordered = dependency_levels(definitions)
        for d in unordered:
            error = ConfigurationError(
                f"Dependency cycle through {sorted(prerequisite_codes(d))}", code=d.code
            )
            self._logger.error(f"Skipping add-on {d.code}: {error}")

        ordered = [d for d in definitions if d.id in levels]
        ordered.sort(key=lambda d: (levels[d.id], *self._selector.sort_key(d)))
        return ordered

    async def calculate(self, context: CalculationContext) -> list[CalculationResult]:
        """
        Evaluate every effective definition for a visit.

        Args:
            context: Visit snapshot

        Returns:
            Accepted add-ons in evaluation order
        """
        definitions = await self._selector.select(
            context.visit_date, context.facility_id, context.insurance_category
        )
        ordered = self.order(definitions)

        results: list[CalculationResult] = []
        accepted: list[str] = []
        for definition in ordered:
            try:
                result = await self._evaluate_definition(definition, context, accepted)
            except Exception as e:
                self._logger.error(
                    f"Error evaluating add-on {definition.code} ({definition.id}) "
                    f"for visit {context.visit_id}: {e}",
                    exc_info=True,
                )
                continue

            if result is not None:
                results.append(result)
                accepted.append(result.code)

        self._logger.info(
            f"Visit {context.visit_id}: {len(results)} add-ons accepted "
            f"({', '.join(accepted) or 'none'}), total {sum(r.points for r in results)} points"
        )
        return results

    async def _evaluate_definition(
        self,
        definition: AddOnDefinitionSchema,
        context: CalculationContext,
        accepted: list[str],
    ) -> Optional[CalculationResult]:
        combination = check_combination(definition, accepted)
        if not combination.allowed:
            self._logger.info(f"Skipping add-on {definition.code}: {combination.reason}")
            return None

        passed: list[str] = []
        for spec in definition.conditions:
            outcome = await self._conditions.evaluate(spec, context, definition, accepted)
            if not outcome.passed:
                self._logger.info(f"Skipping add-on {definition.code}: {outcome.reason}")
                return None
            passed.append(outcome.reason)

        matched_bucket: Optional[str] = None
        pattern_metadata: dict[str, Any] = {}
        if definition.value_type == ValueType.FIXED:
            points = definition.fixed_points or 0
        else:
            pattern = await self._patterns.evaluate(
                definition.pattern_kind or "",
                definition.pattern_config,
                context,
                code=definition.code,
            )
            points = pattern.points
            matched_bucket = pattern.matched_bucket
            pattern_metadata = pattern.metadata

        if points <= 0:
            self._logger.info(f"Skipping add-on {definition.code}: resolved to {points} points")
            return None

        trail = {
            "code": definition.code,
            "name": definition.name,
            "value_type": definition.value_type.value,
            "pattern_kind": definition.pattern_kind,
            "matched_bucket": matched_bucket,
            "points": points,
            "conditions_passed": passed,
            "pattern_metadata": pattern_metadata,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return CalculationResult(
            code=definition.code,
            name=definition.name,
            definition_id=definition.id,
            points=points,
            definition_version=definition.version,
            conditions_passed=passed,
            trail=trail,
        )
