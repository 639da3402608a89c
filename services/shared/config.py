"""
Shared — サービス設定

環境変数はプロセス起動時に一度だけ読み、Settings として
各コンポーネントへ明示的に渡す。
"""

import os

from pydantic import BaseModel, ConfigDict

_ENV_FIELDS = {
    "INVENTORY_SERVICE_URL": "inventory_service_url",
    "SHIPPING_SERVICE_URL": "shipping_service_url",
    "OTEL_EXPORTER_OTLP_ENDPOINT": "otlp_endpoint",
    "LOG_LEVEL": "log_level",
    "DOWNSTREAM_TIMEOUT": "downstream_timeout",
    "SIMULATED_DELAY_SECONDS": "simulated_delay",
    "PORT": "port",
}


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    service_name: str
    inventory_service_url: str = "http://localhost:8081"
    shipping_service_url: str = "http://localhost:8082"
    otlp_endpoint: str | None = None
    log_level: str = "INFO"
    # None = タイムアウトなし (下流がハングすると Saga もハングする)
    downstream_timeout: float | None = None
    simulated_delay: float = 1.0
    port: int = 8080

    @classmethod
    def from_env(cls, service_name: str) -> "Settings":
        values = {
            field: os.environ[env]
            for env, field in _ENV_FIELDS.items()
            if os.environ.get(env)
        }
        return cls(service_name=service_name, **values)
