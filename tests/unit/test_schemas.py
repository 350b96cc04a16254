"""
Unit Tests for Definition and Context Schemas
"""

from datetime import date, datetime, timezone

import pytest
import pytz
from pydantic import ValidationError

from addon_billing.core.enums import ConditionKind, PatternKind, TimeBucket
from addon_billing.schemas.addon import (
    AgeBracketConfig,
    ConditionSpec,
    DurationConfig,
    MonthlyThresholdConfig,
    normalize_field_name,
    parse_pattern_config,
)
from addon_billing.schemas.context import time_bucket_for
from addon_billing.utils.errors import ConfigurationError, UnknownPatternError


@pytest.mark.unit
class TestConditionSpec:
    """Condition parsing and field validation"""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("emergencyVisitReason", "emergency_visit_reason"),
            ("building_id", "site_id"),
            ("deathPlaceCode", "death_location_code"),
            ("patient_age", "patient_age"),
        ],
    )
    def test_field_name_normalization(self, raw, expected):
        assert normalize_field_name(raw) == expected

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ConditionSpec(kind="field_not_empty", field="favourite_colour")

    def test_field_required_for_field_checks(self):
        with pytest.raises(ValidationError):
            ConditionSpec(kind="field_equals", value="x")

    @pytest.mark.parametrize("key", ["pattern", "type"])
    def test_legacy_kind_keys(self, key):
        spec = ConditionSpec.model_validate({key: "is_discharge_date"})

        assert spec.kind == "is_discharge_date"
        assert spec.known_kind is not None

    def test_unknown_kind_parses(self):
        assert ConditionSpec(kind="moon_phase").known_kind is None

    def test_per_window_kind_rewritten(self):
        spec = ConditionSpec.model_validate(
            {"pattern": "medical_late_night_time", "operator": "equals", "value": True, "description": "22:00-6:00"}
        )

        assert spec.known_kind == ConditionKind.TIME_OF_DAY
        assert spec.value == ["late_night"]
        assert spec.operator is None

    def test_duration_kind_rewritten(self):
        spec = ConditionSpec.model_validate({"pattern": "care_visit_duration_90plus"})

        assert spec.known_kind == ConditionKind.VISIT_DURATION_GTE
        assert spec.value == 90

    def test_negated_per_window_kind_selects_complement(self):
        night = ConditionSpec.model_validate({"kind": "care_night_time", "operator": "equals", "value": False})
        short = ConditionSpec.model_validate(
            {"kind": "care_visit_duration_90plus", "operator": "equals", "value": False}
        )

        assert sorted(night.value) == ["daytime", "early_morning", "late_night"]
        assert short.known_kind == ConditionKind.VISIT_DURATION_LT
        assert short.value == 90

    def test_time_based_accepts_every_bucket(self):
        spec = ConditionSpec.model_validate({"pattern": "time_based"})

        assert set(spec.value) == {b.value for b in TimeBucket}


@pytest.mark.unit
class TestDefinitionSchema:
    """Definition validation"""

    def test_single_condition_wrapped(self, make_definition):
        definition = make_definition(conditions={"kind": "is_terminal_care"})

        assert len(definition.conditions) == 1

    def test_null_collections_defaulted(self, make_definition):
        definition = make_definition(conditions=None, depends_on=None, pattern_config=None)

        assert definition.conditions == []
        assert definition.depends_on == []
        assert definition.pattern_config == {}

    def test_fixed_requires_points(self, make_definition):
        with pytest.raises(ValidationError):
            make_definition(fixed_points=None)

    def test_conditional_requires_pattern(self, make_definition):
        with pytest.raises(ValidationError):
            make_definition(value_type="conditional", fixed_points=None)

    def test_window_order(self, make_definition):
        with pytest.raises(ValidationError):
            make_definition(valid_from=date(2024, 6, 1), valid_to=date(2024, 5, 31))

    def test_negative_fixed_points_rejected(self, make_definition):
        with pytest.raises(ValidationError):
            make_definition(fixed_points=-10)


@pytest.mark.unit
class TestPatternConfigs:
    """Pattern config parsing"""

    def test_legacy_pattern_names(self):
        kind, _ = parse_pattern_config("monthly_14day_threshold", {"up_to_14": 1, "after_14": 0})

        assert kind == PatternKind.MONTHLY_THRESHOLD

    def test_unknown_pattern(self):
        with pytest.raises(UnknownPatternError):
            parse_pattern_config("lunar_phase", {})

    def test_invalid_config(self):
        with pytest.raises(ConfigurationError):
            parse_pattern_config("duration", {"conditions": [{"points": 500}]})

    def test_duration_brackets_sorted_descending(self):
        config = DurationConfig.model_validate({"duration_60": 200, "duration_90": 500})

        assert [b.duration_minutes for b in config.sorted_brackets()] == [90, 60]

    def test_age_keys(self):
        config = AgeBracketConfig.model_validate({"age_6_15": 100, "age_0_6": 200, "age_15": 0, "other": 5})

        assert [(b.min_age, b.max_age) for b in config.brackets] == [(0, 6), (6, 15), (15, None)]

    def test_monthly_threshold_legacy_keys(self):
        config = MonthlyThresholdConfig.model_validate({"up_to_10": 300, "after_10": 100})

        assert (config.threshold_day, config.up_to_points, config.after_points) == (10, 300, 100)


@pytest.mark.unit
class TestContext:
    """Calculation context invariants"""

    def test_end_before_start_rejected(self, make_context):
        with pytest.raises(ValidationError):
            make_context(
                visit_start=datetime(2024, 6, 10, 2, 0, tzinfo=timezone.utc),
                visit_end=datetime(2024, 6, 10, 1, 0, tzinfo=timezone.utc),
            )

    def test_context_is_frozen(self, make_context):
        context = make_context()

        with pytest.raises(ValidationError):
            context.patient_age = 5

    def test_local_start(self, make_context):
        context = make_context(visit_start=datetime(2024, 6, 10, 14, 10, tzinfo=timezone.utc))

        local = context.local_start(pytz.timezone("Asia/Tokyo"))

        assert (local.hour, local.minute) == (23, 10)

    @pytest.mark.parametrize(
        "hour,bucket",
        [
            (5, TimeBucket.LATE_NIGHT),
            (6, TimeBucket.EARLY_MORNING),
            (7, TimeBucket.EARLY_MORNING),
            (8, TimeBucket.DAYTIME),
            (17, TimeBucket.DAYTIME),
            (18, TimeBucket.NIGHT),
            (21, TimeBucket.NIGHT),
            (22, TimeBucket.LATE_NIGHT),
        ],
    )
    def test_time_bucket_boundaries(self, hour, bucket):
        assert time_bucket_for(datetime(2024, 6, 10, hour, 59)) == bucket
