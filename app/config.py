"""Configuration management using Pydantic settings.

Two-layer configuration system:
1. Environment: Loads raw values from environment variables (UPPER_CASE)
2. Settings: Clean application settings with lowercase fields and derived values
"""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

# The listener always binds every interface
HOST = "0.0.0.0"
METRICS_PATH = "/metrics"


class Environment(BaseSettings):
    """Raw environment variable loading."""

    model_config = SettingsConfigDict(
        env_file=_PROJECT_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    PORT: int = Field(default=8080)
    FLASK_ENV: str = Field(default="development")
    DEBUG: bool = Field(default=False)
    GRACEFUL_SHUTDOWN_TIMEOUT: float = Field(default=30)
    WAITRESS_THREADS: int = Field(default=16)
    RUNTIME_METRICS_ENABLED: bool = Field(default=True)
    WORKLOAD_MAX_WORKERS: int = Field(default=2)
    CPU_WORKLOAD_ITERATIONS: int = Field(default=5_000_000)
    LATENCY_MIN_MS: int = Field(default=500)
    LATENCY_MAX_MS: int = Field(default=2499)


class Settings(BaseModel):
    """Application settings with lowercase fields and derived values."""

    model_config = ConfigDict(from_attributes=True)

    port: int = 8080
    flask_env: str = "development"
    debug: bool = False
    graceful_shutdown_timeout: float = 30
    waitress_threads: int = 16
    runtime_metrics_enabled: bool = True
    workload_max_workers: int = 2
    cpu_workload_iterations: int = 5_000_000
    latency_min_ms: int = 500
    latency_max_ms: int = 2499

    @property
    def host(self) -> str:
        return HOST

    @property
    def metrics_path(self) -> str:
        return METRICS_PATH

    @property
    def is_testing(self) -> bool:
        return self.flask_env == "testing"

    @property
    def is_production(self) -> bool:
        return self.flask_env == "production"

    def to_flask_config(self) -> "FlaskConfig":
        return FlaskConfig(
            DEBUG=self.debug,
            TESTING=self.is_testing,
        )

    def validate_config(self) -> None:
        from app.exceptions import ConfigurationError

        errors: list[str] = []

        if not 1 <= self.port <= 65535:
            errors.append(f"PORT must be between 1 and 65535, got {self.port}")
        if self.graceful_shutdown_timeout <= 0:
            errors.append("GRACEFUL_SHUTDOWN_TIMEOUT must be positive")
        if self.waitress_threads < 1:
            errors.append("WAITRESS_THREADS must be at least 1")
        if self.workload_max_workers < 1:
            errors.append("WORKLOAD_MAX_WORKERS must be at least 1")
        if self.cpu_workload_iterations < 0:
            errors.append("CPU_WORKLOAD_ITERATIONS cannot be negative")
        if self.latency_min_ms < 0:
            errors.append("LATENCY_MIN_MS cannot be negative")
        if self.latency_min_ms > self.latency_max_ms:
            errors.append("LATENCY_MIN_MS cannot be greater than LATENCY_MAX_MS")

        if errors:
            raise ConfigurationError(
                "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            )

    @classmethod
    def load(cls, env: "Environment | None" = None) -> "Settings":
        if env is None:
            env = Environment()

        return cls(
            port=env.PORT,
            flask_env=env.FLASK_ENV,
            debug=env.DEBUG,
            graceful_shutdown_timeout=env.GRACEFUL_SHUTDOWN_TIMEOUT,
            waitress_threads=env.WAITRESS_THREADS,
            runtime_metrics_enabled=env.RUNTIME_METRICS_ENABLED,
            workload_max_workers=env.WORKLOAD_MAX_WORKERS,
            cpu_workload_iterations=env.CPU_WORKLOAD_ITERATIONS,
            latency_min_ms=env.LATENCY_MIN_MS,
            latency_max_ms=env.LATENCY_MAX_MS,
        )


class FlaskConfig:
    """Flask-specific configuration for app.config.from_object()."""

    def __init__(self, DEBUG: bool, TESTING: bool) -> None:
        self.DEBUG = DEBUG
        self.TESTING = TESTING
