"""Environment-driven engine settings."""

import pytest

from config.settings import DEFAULT_SLA_RESPONSE_HOURS, EngineSettings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "STORAGE_BACKEND",
        "EVENT_DELIVERY",
        "SLA_RESPONSE_HOURS",
        "SLA_WARNING_HOURS",
        "AUTO_CLOSE_AFTER_DAYS",
        "METRICS_TIMEZONE",
        "DATABASE_URL",
        "WRITE_MAX_RETRIES",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = EngineSettings.from_environment()
    assert settings.storage_backend == "dynamodb"
    assert settings.event_delivery == "stream"
    assert settings.sla_response_hours == DEFAULT_SLA_RESPONSE_HOURS
    assert settings.auto_close_after_days == 7
    assert settings.database_url is None
    assert settings.write_max_retries == 3


def test_memory_backend_defaults_to_inline_events(clean_env):
    clean_env.setenv("STORAGE_BACKEND", "memory")
    assert EngineSettings.from_environment().event_delivery == "inline"

    clean_env.setenv("EVENT_DELIVERY", "stream")
    assert EngineSettings.from_environment().event_delivery == "stream"


def test_sla_table_from_json(clean_env):
    clean_env.setenv("SLA_RESPONSE_HOURS", '{"Standard": 24, "gold": 0.5}')
    assert EngineSettings.from_environment().sla_response_hours == {"standard": 24.0, "gold": 0.5}


@pytest.mark.parametrize(
    "name,value",
    [
        ("SLA_RESPONSE_HOURS", "not json"),
        ("SLA_RESPONSE_HOURS", "{}"),
        ("SLA_RESPONSE_HOURS", '{"standard": 0}'),
        ("AUTO_CLOSE_AFTER_DAYS", "-1"),
        ("STORAGE_BACKEND", "redis"),
        ("EVENT_DELIVERY", "kafka"),
    ],
)
def test_invalid_values_rejected(clean_env, name, value):
    clean_env.setenv(name, value)
    with pytest.raises(ValueError):
        EngineSettings.from_environment()
