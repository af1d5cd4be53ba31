"""Configuration settings for the application."""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


@dataclass
class MetricsSettings:
    max_response_times: int = 1000
    max_endpoint_times: int = 100
    max_recent_errors: int = 50
    max_slow_queries: int = 100
    slow_query_ms: int = 100
    very_slow_query_ms: int = 500
    slow_request_ms: int = 1000

    @classmethod
    def from_env(cls) -> "MetricsSettings":
        return cls(
            max_response_times=_env_int("METRICS_MAX_RESPONSE_TIMES", 1000),
            max_endpoint_times=_env_int("METRICS_MAX_ENDPOINT_TIMES", 100),
            max_recent_errors=_env_int("METRICS_MAX_RECENT_ERRORS", 50),
            max_slow_queries=_env_int("METRICS_MAX_SLOW_QUERIES", 100),
            slow_query_ms=_env_int("METRICS_SLOW_QUERY_MS", 100),
            very_slow_query_ms=_env_int("METRICS_VERY_SLOW_QUERY_MS", 500),
            slow_request_ms=_env_int("METRICS_SLOW_REQUEST_MS", 1000),
        )


@dataclass
class ServerSettings:
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_env(cls) -> "ServerSettings":
        return cls(host=os.getenv("HOST", "0.0.0.0"), port=_env_int("PORT", 5000))


@dataclass
class Settings:
    environment: str = "development"
    admin_token: str = ""
    log_level: str = "INFO"
    server: ServerSettings = field(default_factory=ServerSettings)
    metrics: MetricsSettings = field(default_factory=MetricsSettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            environment=os.getenv("APP_ENV", "development").lower(),
            admin_token=os.getenv("ADMIN_TOKEN", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            server=ServerSettings.from_env(),
            metrics=MetricsSettings.from_env(),
        )


settings = Settings.from_env()
