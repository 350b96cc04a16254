"""
Unit Tests for Engine Configuration
"""

import pytest
from pydantic import ValidationError

from addon_billing.core.config import AddOnEngineSettings
from addon_billing.core.enums import VisitStatus


@pytest.mark.unit
class TestAddOnEngineSettings:
    """Environment-driven settings"""

    def test_defaults(self, settings):
        assert settings.TERMINAL_CARE_WINDOW_DAYS == 14
        assert settings.TERMINAL_CARE_MIN_VISITS == 2
        assert settings.COUNTED_VISIT_STATUSES == [VisitStatus.COMPLETED, VisitStatus.REVIEWED]
        assert settings.is_testing is True

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ADDON_TERMINAL_CARE_MIN_VISITS", "3")
        monkeypatch.setenv("ADDON_LOCAL_TIMEZONE", "Europe/Berlin")

        settings = AddOnEngineSettings(_env_file=None)

        assert settings.TERMINAL_CARE_MIN_VISITS == 3
        assert settings.local_tz.zone == "Europe/Berlin"

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            AddOnEngineSettings(_env_file=None, LOCAL_TIMEZONE="Mars/Olympus")

    def test_log_level_normalized(self):
        assert AddOnEngineSettings(_env_file=None, LOG_LEVEL="debug").LOG_LEVEL == "DEBUG"

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            AddOnEngineSettings(_env_file=None, LOG_LEVEL="chatty")
