"""
HTTP access to npm registries.

:class:`HTTPClient` wraps an :class:`httpx.AsyncClient` configured for
packument downloads (abbreviated metadata, optional bearer token) and
retries transient failures with exponential backoff. Registry answers
are mapped onto lockkeeper's exception types:

- ``404`` raises :exc:`~lockkeeper.exceptions.RegistryError`
- other ``4xx`` raise :exc:`~lockkeeper.exceptions.NetworkError` at once
- ``429`` waits for ``Retry-After`` and tries again
- ``5xx``, timeouts and connection errors are retried up to ``max_retries``
"""

from __future__ import annotations

import httpx
import random
import asyncio
from typing import Any, Dict, Optional, cast

from lockkeeper.utils.logger import get_logger
from lockkeeper.__version__ import __version__
from lockkeeper.exceptions import NetworkError, RegistryError
from lockkeeper.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    NPM_ABBREVIATED_ACCEPT,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

# Retry-After values above this are capped.
_MAX_RETRY_AFTER: int = 60

# Consecutive 429 answers tolerated per request.
_MAX_RATE_LIMITED: int = 5


class HTTPClient:
    """Asynchronous registry client with retries.

    Args:
        timeout: Request timeout in seconds.
        max_retries: Retries after the first attempt.
        verify_ssl: Whether to verify SSL certificates.
        user_agent: Custom User-Agent header value.
        token: Bearer token for private registries.

    Example:
        >>> async with HTTPClient() as client:
        ...     data = await client.get_json("https://registry.npmjs.org/chokidar")
    """

    def __init__(
        self,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        verify_ssl: bool = True,
        user_agent: Optional[str] = None,
        token: Optional[str] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.token = token

        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "HTTPClient":
        self._open()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    def _open(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": self.user_agent, "Accept": NPM_ABBREVIATED_ACCEPT}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers=headers,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET ``url``, retrying transient failures.

        Raises:
            RegistryError: The registry answered ``404``.
            NetworkError: Any other client error, or retries ran out.
        """
        client = self._open()
        attempt = 0
        rate_limited = 0
        while True:
            try:
                response = await client.get(url, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                reason = f"{type(exc).__name__}: {exc}"
                if attempt >= self.max_retries:
                    raise NetworkError(
                        f"Request failed after {attempt + 1} attempts: {url}",
                        url=url,
                    ) from exc
            else:
                if response.status_code < 400:
                    return response
                self._check_fatal(url, response)
                if response.status_code == 429:
                    rate_limited += 1
                    if rate_limited > _MAX_RATE_LIMITED:
                        raise NetworkError(
                            f"Rate limit exceeded after {_MAX_RATE_LIMITED} retries",
                            url=url,
                            status_code=429,
                        )
                    await asyncio.sleep(_retry_after(response))
                    continue
                reason = f"HTTP {response.status_code}"
                if attempt >= self.max_retries:
                    raise NetworkError(
                        f"Request failed after {attempt + 1} attempts: {url}",
                        url=url,
                        status_code=response.status_code,
                    )

            delay = (2**attempt) + random.uniform(0.0, 0.3)
            attempt += 1
            logger.warning(
                "%s for %s, retrying in %.1fs (%d/%d)",
                reason,
                url,
                delay,
                attempt,
                self.max_retries,
            )
            await asyncio.sleep(delay)

    @staticmethod
    def _check_fatal(url: str, response: httpx.Response) -> None:
        status = response.status_code
        if status == 404:
            raise RegistryError(f"Resource not found: {url}", url=url, status_code=404)
        if 400 <= status < 500 and status != 429:
            raise NetworkError(
                f"HTTP {status} error for {url}",
                url=url,
                status_code=status,
                response_body=response.text,
            )

    async def get_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        """Fetch ``url`` and return the body as a JSON object."""
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, dict):
            raise NetworkError(
                f"Expected JSON object from {url}",
                url=url,
                response_body=response.text,
            )
        return cast(Dict[str, Any], data)


def _retry_after(response: httpx.Response) -> int:
    value = response.headers.get("Retry-After", "1")
    seconds = int(value) if value.isdigit() else 1
    logger.warning("Rate limited by registry, waiting %ds", seconds)
    return min(seconds, _MAX_RETRY_AFTER)
