from __future__ import annotations

import httpx
from pydantic import BaseModel, ConfigDict, StrictInt, ValidationError

from resilient_random.errors import (
    InvalidPayloadError,
    InvalidRandomNumberError,
    RemoteStatusError,
    RemoteTransportError,
)
from resilient_random.logging import AnyLogger, get_logger, log_debug, log_warning
from resilient_random.provider.constants import RESPONSE_BODY_LOG_LIMIT


class RandomNumberResponse(BaseModel):
    """Provider response body: ``{"random_number": <int>}``."""

    model_config = ConfigDict(extra="ignore")

    random_number: StrictInt


def _truncate(value: str, *, limit: int = RESPONSE_BODY_LOG_LIMIT) -> str:
    return value[:limit]


class RandomNumberClient:
    """HTTP client for the external random-number provider.

    Every failure is raised as a ``RandomNumberRequestError`` subclass;
    transient ones also derive from ``TransientError``.
    """

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        endpoint_url: str,
        logger: AnyLogger | None = None,
    ) -> None:
        """Create a provider client.

        Args:
            client: Shared async HTTP client.
            endpoint_url: Absolute URL of the random-number endpoint.
            logger: Structured logger for request events.
        """
        self._client = client
        self._endpoint_url = endpoint_url
        self._logger = get_logger(__name__) if logger is None else logger

    @property
    def endpoint_url(self) -> str:
        return self._endpoint_url

    async def fetch(self) -> int:
        """Request one random number from the provider.

        Raises:
            RemoteTransportError: The provider could not be reached.
            RemoteStatusError: The provider answered a non-2xx status.
            InvalidPayloadError: The body is not a random-number object.
            InvalidRandomNumberError: The number is not positive.
        """
        log_debug(self._logger, "random_number.http_request", url=self._endpoint_url)
        try:
            response = await self._client.get(self._endpoint_url)
        except httpx.RequestError as exc:
            raise RemoteTransportError(
                f"{exc.__class__.__name__}: {exc}"
            ) from exc

        self._raise_for_status(response)
        value = self._parse_random_number(response)
        if value <= 0:
            log_warning(
                self._logger,
                "random_number.invalid_value",
                value=value,
            )
            raise InvalidRandomNumberError(
                f"Provider returned a non-positive number: {value}.",
                http_status=response.status_code,
                response_body=_truncate(response.text),
            )
        return value

    def _raise_for_status(self, response: httpx.Response) -> None:
        status = response.status_code
        if response.is_success:
            return

        log_warning(
            self._logger,
            "random_number.http_status",
            status_code=status,
            reason_phrase=response.reason_phrase,
        )
        raise RemoteStatusError(
            f"Random number provider returned HTTP {status}.",
            http_status=status,
            response_body=_truncate(response.text),
        )

    def _parse_random_number(self, response: httpx.Response) -> int:
        try:
            payload = RandomNumberResponse.model_validate_json(response.content)
        except ValidationError as exc:
            body = _truncate(response.text)
            log_warning(
                self._logger,
                "random_number.invalid_payload",
                content=body,
                errors=exc.error_count(),
            )
            raise InvalidPayloadError(
                "Random number response is not a valid JSON object.",
                http_status=response.status_code,
                response_body=body,
            ) from exc
        return payload.random_number
