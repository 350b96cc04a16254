"""
Unit Tests for the Condition Evaluator
Tests pure checks, the expected-value (XNOR) rule and record-store backed
conditions (monthly cap, terminal care)
"""

from datetime import date, datetime, timedelta, timezone
from uuid import uuid4

import pytest

from addon_billing.core.enums import LinkState, VisitStatus
from addon_billing.schemas.addon import ConditionSpec
from addon_billing.schemas.records import CalculationHistoryEntry
from addon_billing.services.addon.conditions import ConditionEvaluator, month_bounds


def spec(**data) -> ConditionSpec:
    return ConditionSpec.model_validate(data)


@pytest.fixture
def evaluator(record_store, settings):
    return ConditionEvaluator(record_store, settings)


@pytest.mark.unit
class TestFieldConditions:
    """field_not_empty and field_equals"""

    @pytest.mark.asyncio
    async def test_field_not_empty(self, evaluator, make_context, make_definition):
        context = make_context(emergency_visit_reason="fall at home")

        result = await evaluator.evaluate(
            spec(kind="field_not_empty", field="emergencyVisitReason"), context, make_definition()
        )

        assert result.passed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [None, ""])
    async def test_field_empty(self, evaluator, make_context, make_definition, value):
        context = make_context(emergency_visit_reason=value)

        result = await evaluator.evaluate(
            spec(kind="field_not_empty", field="emergency_visit_reason"), context, make_definition()
        )

        assert result.passed is False

    @pytest.mark.asyncio
    async def test_field_equals(self, evaluator, make_context, make_definition):
        context = make_context(specialist_care_type="palliative_care")

        ok = await evaluator.evaluate(
            spec(kind="field_equals", field="specialist_care_type", value="palliative_care"),
            context,
            make_definition(),
        )
        ko = await evaluator.evaluate(
            spec(kind="field_equals", field="specialist_care_type", value="stoma_care"),
            context,
            make_definition(),
        )

        assert ok.passed is True
        assert ko.passed is False

    @pytest.mark.asyncio
    async def test_field_equals_bool_is_not_inverted(self, evaluator, make_context, make_definition):
        context = make_context(is_second_visit=False)

        result = await evaluator.evaluate(
            spec(kind="field_equals", field="is_second_visit", value=False, operator="equals"),
            context,
            make_definition(),
        )

        assert result.passed is True


@pytest.mark.unit
class TestThresholdConditions:
    """Duration, age and daily visit count thresholds"""

    @pytest.mark.asyncio
    async def test_duration_gte(self, evaluator, make_context, make_definition):
        start = datetime(2024, 6, 10, 1, 0, tzinfo=timezone.utc)
        context = make_context(visit_start=start, visit_end=start + timedelta(minutes=90))

        result = await evaluator.evaluate(spec(kind="visit_duration_gte", value=90), context, make_definition())

        assert result.passed is True
        assert result.metadata["duration_minutes"] == 90

    @pytest.mark.asyncio
    async def test_duration_lt(self, evaluator, make_context, make_definition):
        start = datetime(2024, 6, 10, 1, 0, tzinfo=timezone.utc)
        context = make_context(visit_start=start, visit_end=start + timedelta(minutes=89, seconds=59))

        result = await evaluator.evaluate(spec(kind="visit_duration_lt", value=90), context, make_definition())

        assert result.passed is True
        assert result.metadata["duration_minutes"] == 89

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", ["visit_duration_gte", "visit_duration_lt"])
    async def test_missing_times_fail(self, evaluator, make_context, make_definition, kind):
        context = make_context(visit_start=None, visit_end=None)

        result = await evaluator.evaluate(spec(kind=kind, value=30), context, make_definition())

        assert result.passed is False
        assert "not recorded" in result.reason

    @pytest.mark.asyncio
    async def test_age_thresholds(self, evaluator, make_context, make_definition):
        child = make_context(patient_age=5)

        lt = await evaluator.evaluate(spec(kind="age_lt", value=6), child, make_definition())
        gte = await evaluator.evaluate(spec(kind="age_gte", value=6), child, make_definition())

        assert lt.passed is True
        assert gte.passed is False

    @pytest.mark.asyncio
    async def test_missing_age_fails(self, evaluator, make_context, make_definition):
        result = await evaluator.evaluate(
            spec(kind="age_lt", value=6), make_context(patient_age=None), make_definition()
        )

        assert result.passed is False

    @pytest.mark.asyncio
    async def test_daily_visit_count(self, evaluator, make_context, make_definition):
        third = make_context(daily_visit_ordinal=3)

        result = await evaluator.evaluate(spec(kind="daily_visit_count_gte", value=3), third, make_definition())

        assert result.passed is True


@pytest.mark.unit
class TestFlagConditions:
    """Record flags, facility capability flags and the XNOR rule"""

    @pytest.mark.asyncio
    async def test_flag_true(self, evaluator, make_context, make_definition):
        result = await evaluator.evaluate(
            spec(kind="is_discharge_date"), make_context(is_discharge_date=True), make_definition()
        )

        assert result.passed is True

    @pytest.mark.asyncio
    async def test_expected_false_inverts(self, evaluator, make_context, make_definition):
        condition = spec(kind="is_second_visit", operator="equals", value=False)

        first = await evaluator.evaluate(condition, make_context(is_second_visit=False), make_definition())
        second = await evaluator.evaluate(condition, make_context(is_second_visit=True), make_definition())

        assert first.passed is True
        assert "expected: False" in first.reason
        assert second.passed is False

    @pytest.mark.asyncio
    async def test_expected_true_keeps_outcome(self, evaluator, make_context, make_definition):
        condition = spec(kind="has_building", operator="equals", value=True)

        result = await evaluator.evaluate(condition, make_context(site_id=None), make_definition())

        assert result.passed is False
        assert "Expectation not met" in result.reason

    @pytest.mark.asyncio
    async def test_enhanced_24h_needs_measures(self, evaluator, make_context, make_definition):
        condition = spec(kind="has_24h_support_system_enhanced")

        short = make_context(has_24h_support_system_enhanced=True, burden_reduction_measures=("night_shift_limit",))
        enough = make_context(
            has_24h_support_system_enhanced=True,
            burden_reduction_measures=("night_shift_limit", "rest_interval"),
        )

        assert (await evaluator.evaluate(condition, short, make_definition())).passed is False
        assert (await evaluator.evaluate(condition, enough, make_definition())).passed is True

    @pytest.mark.asyncio
    async def test_emergency_support_flags(self, evaluator, make_context, make_definition):
        context = make_context(has_emergency_support_system=True)

        basic = await evaluator.evaluate(spec(kind="has_emergency_support_system"), context, make_definition())
        enhanced = await evaluator.evaluate(
            spec(kind="has_emergency_support_system_enhanced"), context, make_definition()
        )

        assert basic.passed is True
        assert enhanced.passed is False


@pytest.mark.unit
class TestTimeAndStaffConditions:
    """Time of day, special management and specialist checks"""

    @pytest.mark.asyncio
    async def test_time_of_day_membership(self, evaluator, make_context, make_definition):
        # 19:30 in Tokyo
        context = make_context(visit_start=datetime(2024, 6, 10, 10, 30, tzinfo=timezone.utc))

        night = await evaluator.evaluate(
            spec(kind="time_of_day", value=["night", "early_morning"]), context, make_definition()
        )
        late = await evaluator.evaluate(spec(kind="time_of_day", value="late_night"), context, make_definition())

        assert night.passed is True
        assert night.metadata["time_bucket"] == "night"
        assert late.passed is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kind,utc_hour,expected",
        [
            ("medical_late_night_time", 14, True),  # 23:10 in Tokyo
            ("medical_late_night_time", 10, False),  # 19:10
            ("care_night_time", 10, True),
            ("care_early_morning_time", 21, True),  # 06:10
            ("medical_early_morning_time", 0, False),  # 09:10
            ("time_based", 3, True),
        ],
    )
    async def test_per_window_legacy_kinds(
        self, evaluator, make_context, make_definition, kind, utc_hour, expected
    ):
        context = make_context(visit_start=datetime(2024, 6, 10, utc_hour, 10, tzinfo=timezone.utc))
        condition = spec(pattern=kind, operator="equals", value=True)

        result = await evaluator.evaluate(condition, context, make_definition())

        assert result.passed is expected

    @pytest.mark.asyncio
    async def test_time_based_needs_start(self, evaluator, make_context, make_definition):
        result = await evaluator.evaluate(spec(pattern="time_based"), make_context(), make_definition())

        assert result.passed is False

    @pytest.mark.asyncio
    async def test_special_management(self, evaluator, make_context, make_definition):
        with_categories = make_context(special_management_categories=("tracheostomy",))

        any_category = await evaluator.evaluate(
            spec(kind="patient_has_special_management"), with_categories, make_definition()
        )
        other_category = await evaluator.evaluate(
            spec(kind="patient_has_special_management", value=["home_oxygen"]), with_categories, make_definition()
        )

        assert any_category.passed is True
        assert other_category.passed is False

    @pytest.mark.asyncio
    async def test_special_management_tier(self, evaluator, make_context, make_definition):
        tier_one = make_context(special_management_categories=("tracheostomy",), special_management_tier=1)

        result = await evaluator.evaluate(spec(kind="special_management_tier", value=1), tier_one, make_definition())

        assert result.passed is True

    @pytest.mark.asyncio
    async def test_specialties_match(self, evaluator, make_context, make_definition):
        context = make_context(
            staff_id=uuid4(),
            staff_qualifications=("緩和ケア",),
            specialist_care_type="palliative_care",
        )

        match = await evaluator.evaluate(
            spec(kind="specialties_match", value=["緩和ケア", "褥瘡ケア"]), context, make_definition()
        )
        mismatch = await evaluator.evaluate(spec(kind="specialties_match", value=["褥瘡ケア"]), context, make_definition())

        assert match.passed is True
        assert mismatch.passed is False

    @pytest.mark.asyncio
    async def test_requires_specialized_nurse(self, evaluator, make_context, make_definition):
        untrained = make_context(staff_id=uuid4(), staff_qualifications=())

        result = await evaluator.evaluate(spec(kind="requires_specialized_nurse"), untrained, make_definition())

        assert result.passed is False


@pytest.mark.unit
class TestUnknownAndDependentConditions:
    """Unknown kinds and same-visit prerequisites"""

    @pytest.mark.asyncio
    async def test_unknown_kind_fails_without_raising(self, evaluator, make_context, make_definition):
        result = await evaluator.evaluate(spec(kind="moon_phase", value="full"), make_context(), make_definition())

        assert result.passed is False
        assert "Unknown condition kind" in result.reason

    @pytest.mark.asyncio
    async def test_legacy_pattern_key(self, evaluator, make_context, make_definition):
        condition = spec(pattern="is_terminal_care")

        result = await evaluator.evaluate(condition, make_context(is_terminal_care=True), make_definition())

        assert result.passed is True

    @pytest.mark.asyncio
    async def test_addon_accepted(self, evaluator, make_context, make_definition):
        condition = spec(kind="addon_accepted", value="medical_discharge_joint_guidance")

        with_prereq = await evaluator.evaluate(
            condition, make_context(), make_definition(), accepted_codes=["medical_discharge_joint_guidance"]
        )
        without = await evaluator.evaluate(condition, make_context(), make_definition(), accepted_codes=[])

        assert with_prereq.passed is True
        assert without.passed is False


@pytest.mark.unit
class TestMonthlyVisitLimit:
    """Same-month occurrence cap backed by persisted history"""

    def seed_occurrences(self, record_store, history_store, make_visit, count, code, status=VisitStatus.COMPLETED):
        for day in range(1, count + 1):
            visit = make_visit(visit_date=date(2024, 6, day), status=status)
            history_store.seed(
                [
                    CalculationHistoryEntry(
                        visit_id=visit.id,
                        definition_id=uuid4(),
                        code=code,
                        points=100,
                        definition_version="2024",
                        link_state=LinkState.AUTOMATIC,
                    )
                ]
            )

    @pytest.mark.asyncio
    async def test_fifteenth_visit_fails_at_cap_14(
        self, evaluator, record_store, history_store, make_visit, make_context, make_definition
    ):
        self.seed_occurrences(record_store, history_store, make_visit, 14, "capped")
        context = make_context(visit_date=date(2024, 6, 20))

        result = await evaluator.evaluate(
            spec(kind="monthly_visit_limit", value=14), context, make_definition(code="capped")
        )

        assert result.passed is False
        assert result.metadata["current_count"] == 14

    @pytest.mark.asyncio
    async def test_fourteenth_visit_passes_at_cap_14(
        self, evaluator, record_store, history_store, make_visit, make_context, make_definition
    ):
        self.seed_occurrences(record_store, history_store, make_visit, 13, "capped")
        context = make_context(visit_date=date(2024, 6, 20))

        result = await evaluator.evaluate(
            spec(kind="monthly_visit_limit", value=14), context, make_definition(code="capped")
        )

        assert result.passed is True
        assert result.metadata["current_count"] == 13

    @pytest.mark.asyncio
    async def test_current_visit_history_not_counted(
        self, evaluator, record_store, history_store, make_visit, make_context, make_definition
    ):
        current = make_visit(visit_date=date(2024, 6, 20))
        history_store.seed(
            [
                CalculationHistoryEntry(
                    visit_id=current.id,
                    definition_id=uuid4(),
                    code="capped",
                    points=100,
                    definition_version="2024",
                )
            ]
        )
        context = make_context(visit_id=current.id, visit_date=current.visit_date)

        result = await evaluator.evaluate(
            spec(kind="monthly_visit_limit", value=1), context, make_definition(code="capped")
        )

        assert result.passed is True

    @pytest.mark.asyncio
    async def test_drafts_and_other_months_not_counted(
        self, evaluator, record_store, history_store, make_visit, make_context, make_definition
    ):
        self.seed_occurrences(record_store, history_store, make_visit, 3, "capped", status=VisitStatus.DRAFT)
        previous_month = make_visit(visit_date=date(2024, 5, 31))
        history_store.seed(
            [
                CalculationHistoryEntry(
                    visit_id=previous_month.id,
                    definition_id=uuid4(),
                    code="capped",
                    points=100,
                    definition_version="2024",
                )
            ]
        )
        context = make_context(visit_date=date(2024, 6, 20))

        result = await evaluator.evaluate(
            spec(kind="monthly_visit_limit", value=1), context, make_definition(code="capped")
        )

        assert result.passed is True
        assert result.metadata["current_count"] == 0


@pytest.mark.unit
class TestTerminalCareRequirement:
    """Death-date, death-location and trailing-window visit count"""

    DEATH = date(2024, 6, 20)

    @pytest.mark.asyncio
    async def test_one_prior_plus_current_passes(self, evaluator, make_visit, make_context, make_definition):
        make_visit(visit_date=self.DEATH - timedelta(days=3), is_terminal_care=True)
        context = make_context(
            visit_date=self.DEATH,
            death_date=self.DEATH,
            death_location_code="01",
            is_terminal_care=True,
        )

        result = await evaluator.evaluate(
            spec(kind="terminal_care_requirement", value=["01", "16"]), context, make_definition()
        )

        assert result.passed is True
        assert result.metadata["visit_count"] == 2

    @pytest.mark.asyncio
    async def test_current_visit_alone_fails(self, evaluator, make_context, make_definition):
        context = make_context(
            visit_date=self.DEATH,
            death_date=self.DEATH,
            death_location_code="01",
            is_terminal_care=True,
        )

        result = await evaluator.evaluate(
            spec(kind="terminal_care_requirement", value=["01", "16"]), context, make_definition()
        )

        assert result.passed is False
        assert result.metadata["visit_count"] == 1

    @pytest.mark.asyncio
    async def test_visits_outside_window_ignored(self, evaluator, make_visit, make_context, make_definition):
        make_visit(visit_date=self.DEATH - timedelta(days=15), is_terminal_care=True)
        context = make_context(
            visit_date=self.DEATH, death_date=self.DEATH, death_location_code="01", is_terminal_care=True
        )

        result = await evaluator.evaluate(
            spec(kind="terminal_care_requirement", value=["01"]), context, make_definition()
        )

        assert result.passed is False

    @pytest.mark.asyncio
    async def test_death_location_allow_list(self, evaluator, make_visit, make_context, make_definition):
        make_visit(visit_date=self.DEATH - timedelta(days=1), is_terminal_care=True)
        context = make_context(
            visit_date=self.DEATH, death_date=self.DEATH, death_location_code="01", is_terminal_care=True
        )

        result = await evaluator.evaluate(
            spec(kind="terminal_care_requirement", value=["16"]), context, make_definition()
        )

        assert result.passed is False
        assert "Death location" in result.reason

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "code,location,expected",
        [
            ("terminal_care_1", "01", True),
            ("terminal_care_1", "16", True),
            ("terminal_care_2", "01", False),
            ("terminal_care_2", "16", True),
            ("care_terminal_care", "01", True),
            ("care_terminal_care", "16", False),
        ],
    )
    async def test_default_locations_per_code(
        self, evaluator, make_visit, make_context, make_definition, code, location, expected
    ):
        make_visit(visit_date=self.DEATH - timedelta(days=2), is_terminal_care=True)
        context = make_context(
            visit_date=self.DEATH, death_date=self.DEATH, death_location_code=location, is_terminal_care=True
        )
        condition = spec(pattern="terminal_care_requirement", operator="equals", value=True)

        result = await evaluator.evaluate(condition, context, make_definition(code=code))

        assert result.passed is expected

    @pytest.mark.asyncio
    async def test_no_location_list_fails(self, evaluator, make_visit, make_context, make_definition):
        make_visit(visit_date=self.DEATH - timedelta(days=2), is_terminal_care=True)
        context = make_context(
            visit_date=self.DEATH, death_date=self.DEATH, death_location_code="01", is_terminal_care=True
        )

        result = await evaluator.evaluate(
            spec(kind="terminal_care_requirement"), context, make_definition(code="regional_terminal_care")
        )

        assert result.passed is False
        assert "No death-location list" in result.reason

    @pytest.mark.asyncio
    async def test_visit_must_be_on_death_date(self, evaluator, make_context, make_definition):
        context = make_context(visit_date=self.DEATH - timedelta(days=1), death_date=self.DEATH)

        result = await evaluator.evaluate(spec(kind="terminal_care_requirement"), context, make_definition())

        assert result.passed is False

    @pytest.mark.asyncio
    async def test_no_death_date(self, evaluator, make_context, make_definition):
        result = await evaluator.evaluate(spec(kind="terminal_care_requirement"), make_context(), make_definition())

        assert result.passed is False


@pytest.mark.unit
def test_month_bounds():
    assert month_bounds(date(2024, 2, 14)) == (date(2024, 2, 1), date(2024, 2, 29))
