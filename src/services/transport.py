"""
Retrying HTTP transport shared by the E-PIX and gPAS gateways.

A single httpx.AsyncClient carries the default headers (content type and
optional basic credential) and the request timeout. Transient failures
(network errors and 5xx responses) are retried with exponential backoff;
4xx responses are returned to the caller untouched.
"""

import asyncio
import logging
from dataclasses import dataclass

import httpx

from src.codec.fhir import FHIR_CONTENT_TYPE
from src.exceptions import TransportError

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({500, 502, 503, 504})

# SOAP 1.1 reports application faults with HTTP 500
SOAP_TRANSIENT_STATUSES = TRANSIENT_STATUSES - {500}

# httpx errors retried like transient statuses
TRANSIENT_ERRORS = (httpx.NetworkError, httpx.TimeoutException, httpx.RemoteProtocolError)


@dataclass(frozen=True)
class TransportResponse:
    """Status and body of a completed backend call."""

    status_code: int
    content: bytes

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff bounds for transient failures."""

    max_retries: int = 3
    min_wait: float = 0.5
    max_wait: float = 10.0
    exponential_base: float = 2.0

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        return min(self.min_wait * self.exponential_base ** (attempt - 1), self.max_wait)


class BackendTransport:
    """HTTP client for the TTP backends with retry on transient failures."""

    def __init__(
        self,
        timeout: float = 30.0,
        retry: RetryPolicy | None = None,
        username: str | None = None,
        password: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.retry = retry or RetryPolicy()
        auth = httpx.BasicAuth(username, password or "") if username else None
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": FHIR_CONTENT_TYPE},
            auth=auth,
            transport=transport,
        )

    async def close(self) -> None:
        """Close the httpx client."""
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        content: bytes | None = None,
        content_type: str | None = None,
        retry_statuses: frozenset[int] = TRANSIENT_STATUSES,
    ) -> TransportResponse:
        """
        Send a request, retrying transient failures.

        Args:
            method: HTTP method
            url: Absolute backend URL
            content: Request body
            content_type: Overrides the default ``application/fhir+json``
            retry_statuses: Response statuses treated as transient

        Returns:
            TransportResponse of the first non-transient attempt

        Raises:
            TransportError: If the network fails or retries are exhausted
        """
        headers = {"Content-Type": content_type} if content_type else None
        attempt = 0

        while True:
            try:
                response = await self._client.request(
                    method, url, content=content, headers=headers
                )
            except TRANSIENT_ERRORS as e:
                if attempt >= self.retry.max_retries:
                    raise TransportError(
                        f"{method} {url} failed after {attempt + 1} attempts: {e}"
                    ) from e
                failure = str(e) or type(e).__name__
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {url} failed: {e}") from e
            else:
                if response.status_code not in retry_statuses:
                    return TransportResponse(response.status_code, response.content)
                if attempt >= self.retry.max_retries:
                    raise TransportError(
                        f"{method} {url} failed after {attempt + 1} attempts: "
                        f"HTTP {response.status_code}"
                    )
                failure = f"HTTP {response.status_code}"

            attempt += 1
            delay = self.retry.delay(attempt)
            logger.warning(
                "%s %s failed (%s), retry %d/%d in %.1fs",
                method,
                url,
                failure,
                attempt,
                self.retry.max_retries,
                delay,
            )
            await asyncio.sleep(delay)

    async def probe(self, url: str) -> None:
        """
        Check that a TTP-FHIR endpoint answers its metadata request.

        Raises:
            TransportError: If the endpoint is unreachable or not healthy
        """
        metadata = f"{url}/metadata"
        try:
            response = await self._client.get(metadata)
        except httpx.HTTPError as e:
            logger.error("Connection to %s failed: %s", metadata, e)
            raise TransportError(f"Connection to {metadata} failed: {e}") from e

        if not response.is_success:
            raise TransportError(
                f"Metadata response returned error code: {response.status_code}"
            )
