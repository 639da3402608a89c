"""Settings.from_env のテスト"""

import pytest
from pydantic import ValidationError

from services.shared.config import Settings

ENV_VARS = (
    "INVENTORY_SERVICE_URL",
    "SHIPPING_SERVICE_URL",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "LOG_LEVEL",
    "DOWNSTREAM_TIMEOUT",
    "SIMULATED_DELAY_SECONDS",
    "PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_without_environment(clean_env):
    settings = Settings.from_env("order-service")

    assert settings.service_name == "order-service"
    assert settings.inventory_service_url == "http://localhost:8081"
    assert settings.shipping_service_url == "http://localhost:8082"
    assert settings.otlp_endpoint is None
    assert settings.downstream_timeout is None
    assert settings.simulated_delay == 1.0
    assert settings.port == 8080


def test_environment_overrides_are_parsed(clean_env):
    clean_env.setenv("INVENTORY_SERVICE_URL", "http://inventory:8080")
    clean_env.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://collector:4317")
    clean_env.setenv("DOWNSTREAM_TIMEOUT", "2.5")
    clean_env.setenv("SIMULATED_DELAY_SECONDS", "0.1")
    clean_env.setenv("PORT", "9000")

    settings = Settings.from_env("order-service")

    assert settings.inventory_service_url == "http://inventory:8080"
    assert settings.otlp_endpoint == "http://collector:4317"
    assert settings.downstream_timeout == 2.5
    assert settings.simulated_delay == 0.1
    assert settings.port == 9000


def test_empty_variables_fall_back_to_defaults(clean_env):
    clean_env.setenv("DOWNSTREAM_TIMEOUT", "")

    assert Settings.from_env("order-service").downstream_timeout is None


def test_invalid_value_is_rejected(clean_env):
    clean_env.setenv("PORT", "not-a-port")

    with pytest.raises(ValidationError):
        Settings.from_env("order-service")


def test_settings_are_immutable():
    settings = Settings(service_name="order-service")

    with pytest.raises(ValidationError):
        settings.port = 1
