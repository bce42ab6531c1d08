from __future__ import annotations

from dataclasses import replace

import pytest

from telecrm.core.config import _build_config, _validate_config, get_config
from telecrm.core.exceptions import ConfigurationError


def test_defaults_match_lead_lifecycle_rules(monkeypatch):
    for key in (
        "LOST_COOLING_OFF_DAYS",
        "HOT_COOLING_OFF_DAYS",
        "ASSIGNMENT_MAX_RETRIES",
        "SAME_EMPLOYEE_RESETS_CALL_STATUS",
    ):
        monkeypatch.delenv(key, raising=False)

    config = _build_config("development")

    assert config.LOST_COOLING_OFF_DAYS == 14
    assert config.HOT_COOLING_OFF_DAYS == 14
    assert config.ASSIGNMENT_MAX_RETRIES == 3
    assert config.SAME_EMPLOYEE_RESETS_CALL_STATUS is True
    assert config.is_production is False


def test_env_overrides_are_read(monkeypatch):
    monkeypatch.setenv("HOT_COOLING_OFF_DAYS", "7")
    monkeypatch.setenv("SAME_EMPLOYEE_RESETS_CALL_STATUS", "false")

    config = _build_config("development")

    assert config.HOT_COOLING_OFF_DAYS == 7
    assert config.SAME_EMPLOYEE_RESETS_CALL_STATUS is False


@pytest.mark.parametrize(
    "overrides",
    [
        {"DATABASE_URL": "mysql://user@localhost/crm"},
        {"DATABASE_URL": "postgresql://"},
        {"STORE_TIMEOUT_SECONDS": 0},
        {"HOT_COOLING_OFF_DAYS": 0},
        {"ASSIGNMENT_MAX_RETRIES": -1},
        {"LOG_LEVEL": "LOUD"},
    ],
)
def test_invalid_values_are_rejected(overrides):
    with pytest.raises(ConfigurationError):
        _validate_config(replace(get_config(), **overrides))


def test_production_rejects_placeholder_credentials():
    config = replace(
        get_config(),
        ENV="production",
        DATABASE_URL="postgresql://change_me:change_me@db:5432/telecrm",
    )
    with pytest.raises(ConfigurationError):
        _validate_config(config)
