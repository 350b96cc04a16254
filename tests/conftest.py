"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

from datetime import date
from typing import Any, Callable
from uuid import UUID, uuid4

import pytest

from addon_billing.core.config import AddOnEngineSettings
from addon_billing.core.enums import InsuranceCategory, ValueType, VisitStatus
from addon_billing.schemas.addon import AddOnDefinitionSchema
from addon_billing.schemas.context import CalculationContext
from addon_billing.schemas.records import FacilitySnapshot, PatientSnapshot, VisitSnapshot
from addon_billing.services.addon.demo_store import DemoHistoryStore, DemoRecordStore

FACILITY_ID = UUID("00000000-0000-0000-0000-0000000000f1")
PATIENT_ID = UUID("00000000-0000-0000-0000-0000000000a1")


@pytest.fixture
def facility_id() -> UUID:
    return FACILITY_ID


@pytest.fixture
def patient_id() -> UUID:
    return PATIENT_ID


@pytest.fixture
def settings() -> AddOnEngineSettings:
    """Engine settings isolated from the environment and .env files."""
    return AddOnEngineSettings(_env_file=None, ENVIRONMENT="testing", LOCAL_TIMEZONE="Asia/Tokyo")


@pytest.fixture
def history_store() -> DemoHistoryStore:
    return DemoHistoryStore()


@pytest.fixture
def record_store(history_store: DemoHistoryStore) -> DemoRecordStore:
    """In-memory record store with one facility and one medical patient."""
    store = DemoRecordStore(history_store)
    store.add_facility(FacilitySnapshot(id=FACILITY_ID))
    store.add_patient(
        PatientSnapshot(
            id=PATIENT_ID,
            facility_id=FACILITY_ID,
            date_of_birth=date(1940, 4, 1),
            insurance_category=InsuranceCategory.MEDICAL,
        )
    )
    return store


@pytest.fixture
def make_definition() -> Callable[..., AddOnDefinitionSchema]:
    """Build add-on definitions; a fixed 100-point medical add-on by default."""

    def _make(**overrides: Any) -> AddOnDefinitionSchema:
        data: dict[str, Any] = {
            "id": uuid4(),
            "code": "test_addon",
            "name": "Test add-on",
            "version": "2024",
            "insurance_category": InsuranceCategory.MEDICAL,
            "valid_from": date(2024, 1, 1),
            "value_type": ValueType.FIXED,
            "fixed_points": 100,
        }
        data.update(overrides)
        return AddOnDefinitionSchema.model_validate(data)

    return _make


@pytest.fixture
def make_context() -> Callable[..., CalculationContext]:
    """Build calculation contexts for a weekday-morning medical visit."""

    def _make(**overrides: Any) -> CalculationContext:
        data: dict[str, Any] = {
            "visit_id": uuid4(),
            "patient_id": PATIENT_ID,
            "facility_id": FACILITY_ID,
            "visit_date": date(2024, 6, 10),
            "insurance_category": InsuranceCategory.MEDICAL,
            "patient_age": 84,
        }
        data.update(overrides)
        return CalculationContext(**data)

    return _make


@pytest.fixture
def make_visit(record_store: DemoRecordStore) -> Callable[..., VisitSnapshot]:
    """Create and store a completed visit for the default patient."""

    def _make(**overrides: Any) -> VisitSnapshot:
        data: dict[str, Any] = {
            "id": uuid4(),
            "patient_id": PATIENT_ID,
            "facility_id": FACILITY_ID,
            "status": VisitStatus.COMPLETED,
            "visit_date": date(2024, 6, 10),
        }
        data.update(overrides)
        return record_store.add_visit(VisitSnapshot(**data))

    return _make


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
