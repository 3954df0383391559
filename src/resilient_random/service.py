from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence

import httpx

from resilient_random.circuit_breaker import (
    AbstractBreakerStorage,
    BreakerListener,
    CircuitBreaker,
    LoggingBreakerListener,
)
from resilient_random.logging import (
    AnyLogger,
    configure_structlog,
    get_logger,
    log_debug,
    request_log_context,
)
from resilient_random.outcomes import PipelineResult
from resilient_random.pipeline import ResiliencePipeline
from resilient_random.provider import RandomNumberClient
from resilient_random.readiness import ReadinessCheck, make_circuit_check
from resilient_random.retry import RetryPolicy
from resilient_random.settings import RandomNumberServiceSettings


def build_http_client(settings: RandomNumberServiceSettings) -> httpx.AsyncClient:
    """Build the shared HTTP client for the provider."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"Accept": "application/json"},
    )


def configure_logging(settings: RandomNumberServiceSettings) -> None:
    """Apply the configured log level and output format process-wide."""
    configure_structlog(log_level=settings.log_level, json_logs=settings.log_json)


class RandomNumberService:
    """Get random numbers from the provider, falling back when it is unhealthy."""

    def __init__(
        self,
        *,
        client: RandomNumberClient,
        pipeline: ResiliencePipeline,
        logger: AnyLogger | None = None,
    ) -> None:
        self._client = client
        self._pipeline = pipeline
        self._logger = get_logger(__name__) if logger is None else logger

    @classmethod
    def from_settings(
        cls,
        settings: RandomNumberServiceSettings,
        *,
        http_client: httpx.AsyncClient,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: AnyLogger | None = None,
    ) -> RandomNumberService:
        """Wire client, breaker, retry, timeout and fallback from settings.

        Args:
            settings: Loaded service settings.
            http_client: Shared async HTTP client, owned by the caller.
            storage: Optional breaker storage shared with other components.
            listeners: Breaker listeners. Defaults to a logging listener.
            logger: Structured logger shared by every component.
        """
        resolved_logger = get_logger(__name__) if logger is None else logger
        breaker_config = settings.breaker_config()
        if listeners is None:
            listeners = (
                LoggingBreakerListener(
                    open_duration=breaker_config.open_duration,
                    logger=resolved_logger,
                ),
            )
        breaker = CircuitBreaker(
            settings.breaker_name,
            config=breaker_config,
            storage=storage,
            listeners=listeners,
        )
        pipeline = ResiliencePipeline(
            config=settings.pipeline_config(),
            breaker=breaker,
            retry=RetryPolicy(settings.retry_config(), logger=resolved_logger),
            logger=resolved_logger,
        )
        client = RandomNumberClient(
            client=http_client,
            endpoint_url=settings.endpoint_url,
            logger=resolved_logger,
        )
        return cls(client=client, pipeline=pipeline, logger=resolved_logger)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._pipeline.breaker

    def readiness_check(self) -> ReadinessCheck:
        """Build a readiness check reflecting this service's breaker."""
        return make_circuit_check(
            self.breaker,
            fallback_enabled=self._pipeline.config.enable_fallback,
        )

    async def fetch_random_number(
        self,
        cancel_event: asyncio.Event | None = None,
    ) -> PipelineResult:
        """Return the tagged pipeline result for one request.

        Every event logged while serving the request carries its
        ``request_id`` and the breaker name.
        """
        with request_log_context(
            request_id=uuid.uuid4().hex,
            breaker=self.breaker.name,
        ):
            log_debug(
                self._logger,
                "random_number.requested",
                url=self._client.endpoint_url,
            )
            return await self._pipeline.execute(self._client.fetch, cancel_event)

    async def get_random_number(
        self,
        cancel_event: asyncio.Event | None = None,
    ) -> int:
        """Return a remote or fallback number.

        Raises:
            TerminalFailureError: No remote value and fallback is disabled.
        """
        result = await self.fetch_random_number(cancel_event)
        return result.unwrap()
