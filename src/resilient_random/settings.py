from __future__ import annotations

from pydantic import (
    BaseModel,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from resilient_random.circuit_breaker import CircuitBreakerConfig
from resilient_random.logging import get_log_level_value
from resilient_random.pipeline import PipelineConfig
from resilient_random.provider.constants import DEFAULT_ENDPOINT_PATH
from resilient_random.retry import RetryConfig

SETTINGS_ENV_PREFIX = "RANDOM_NUMBER_SERVICE_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(
        env_prefix=prefix,
        env_nested_delimiter="__",
        case_sensitive=False,
    )


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker thresholds for the random-number provider."""

    failure_rate_threshold: float = 50.0
    minimum_throughput: int = 10
    sampling_period_seconds: float = 30.0
    open_timeout_seconds: float = 30.0

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> CircuitBreakerSettings:
        if not 0.0 < self.failure_rate_threshold <= 100.0:
            raise ValueError("failure_rate_threshold must be > 0 and <= 100")
        if self.minimum_throughput < 1:
            raise ValueError("minimum_throughput must be >= 1")
        if self.sampling_period_seconds <= 0:
            raise ValueError("sampling_period_seconds must be > 0")
        if self.open_timeout_seconds < 0:
            raise ValueError("open_timeout_seconds must be >= 0")
        return self


class RandomNumberServiceSettings(BaseSettings):
    """Settings for the external random-number provider and its pipeline."""

    model_config = prefixed_settings_config(SETTINGS_ENV_PREFIX)

    base_url: str
    endpoint_path: str = DEFAULT_ENDPOINT_PATH
    timeout_seconds: float = 5.0
    retry_count: int = 3
    retry_base_delay_seconds: float = 1.0
    retry_max_delay_seconds: float = 10.0
    retry_use_jitter: bool = True
    enable_fallback: bool = True
    fallback_min_value: int = 1
    fallback_max_value: int = 101
    circuit_breaker: CircuitBreakerSettings = Field(
        default_factory=CircuitBreakerSettings
    )
    breaker_name: str = "random_number_service"
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("base_url", "endpoint_path", "breaker_name", mode="before")
    @classmethod
    def _validate_required_string(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip()
        if not normalized:
            raise ValueError(f"{info.field_name} must be non-empty")
        return normalized

    @field_validator("endpoint_path")
    @classmethod
    def _normalize_endpoint_path(cls, value: str) -> str:
        if not value.startswith("/"):
            return f"/{value}"
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            get_log_level_value(value)
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _validate_service_settings(self) -> RandomNumberServiceSettings:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if self.retry_base_delay_seconds < 0:
            raise ValueError("retry_base_delay_seconds must be >= 0")
        if self.retry_max_delay_seconds < self.retry_base_delay_seconds:
            raise ValueError(
                "retry_max_delay_seconds must be >= retry_base_delay_seconds"
            )
        if self.fallback_min_value >= self.fallback_max_value:
            raise ValueError("fallback_min_value must be < fallback_max_value")
        return self

    @property
    def endpoint_url(self) -> str:
        """Return the full provider URL."""
        return f"{self.base_url.rstrip('/')}{self.endpoint_path}"

    def breaker_config(self) -> CircuitBreakerConfig:
        """Build the immutable circuit breaker configuration."""
        breaker = self.circuit_breaker
        return CircuitBreakerConfig(
            failure_ratio=breaker.failure_rate_threshold / 100.0,
            minimum_throughput=breaker.minimum_throughput,
            sampling_period=breaker.sampling_period_seconds,
            open_duration=breaker.open_timeout_seconds,
        )

    def retry_config(self) -> RetryConfig:
        """Build the immutable retry configuration."""
        return RetryConfig.from_retry_count(
            self.retry_count,
            base_delay=self.retry_base_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
            jitter=self.retry_use_jitter,
        )

    def pipeline_config(self) -> PipelineConfig:
        """Build the immutable pipeline configuration."""
        return PipelineConfig(
            attempt_timeout=self.timeout_seconds,
            enable_fallback=self.enable_fallback,
            fallback_min_value=self.fallback_min_value,
            fallback_max_value=self.fallback_max_value,
        )
