# paygate/gate/fetch.py
"""
Outbound HTTP client for fetching client-supplied URLs.

Every request:
1. Is checked by the SSRF guard (including each redirect hop)
2. Goes out through the upstream mobile proxy when one is configured
3. Is bounded by a hard per-attempt timeout
4. Is retried on network errors, timeouts and 5xx with backoff between attempts
5. Downloads at most max_body_bytes of the response body

4xx responses are terminal and returned to the caller as-is.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import urljoin

import httpx

from paygate.core.config import settings
from paygate.gate.errors import (
    FetchError,
    FetchNetworkError,
    FetchTimeoutError,
    SsrfBlockedError,
    UpstreamStatusError,
)
from paygate.gate.ssrf import ALLOWED_SCHEMES, BLOCKED_HOST_PATTERNS, is_fetch_allowed

logger = logging.getLogger(__name__)

REDIRECT_STATUSES = (301, 302, 303, 307, 308)
STRIPPED_BODY_HEADERS = ("content-encoding", "content-length", "transfer-encoding")


@dataclass(frozen=True)
class FetchPolicy:
    """Outbound fetch configuration."""
    allowed_schemes: Tuple[str, ...] = ALLOWED_SCHEMES
    blocked_host_patterns: Tuple[str, ...] = BLOCKED_HOST_PATTERNS
    timeout_ms: int = 30000
    max_retries: int = 2
    backoff_ms: int = 1000
    backoff_strategy: str = "exponential"
    max_redirects: int = 5
    max_body_bytes: int = 200000

    @classmethod
    def from_settings(cls) -> "FetchPolicy":
        return cls(
            timeout_ms=settings.FETCH_TIMEOUT_MS,
            max_retries=settings.FETCH_MAX_RETRIES,
            backoff_ms=settings.FETCH_BACKOFF_MS,
            backoff_strategy=settings.FETCH_BACKOFF_STRATEGY,
            max_redirects=settings.FETCH_MAX_REDIRECTS,
            max_body_bytes=settings.FETCH_MAX_DOWNLOAD_BYTES,
        )

    def backoff_seconds(self, failed_attempt: int) -> float:
        """
        Delay before the next attempt.

        Args:
            failed_attempt: 0-based index of the attempt that just failed
        """
        if self.backoff_strategy == "exponential":
            return self.backoff_ms * (2 ** failed_attempt) / 1000
        return self.backoff_ms / 1000


class FetchClient:
    """
    SSRF-guarded HTTP client with timeout and retry/backoff.

    A new httpx.AsyncClient is opened per fetch so no connection state is
    shared between requests for different clients.
    """

    def __init__(
        self,
        policy: Optional[FetchPolicy] = None,
        proxy_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the fetch client.

        Args:
            policy: Fetch policy. Defaults to FetchPolicy().
            proxy_url: Upstream proxy URL including credentials, if any.
            transport: Custom httpx transport (used instead of the proxy).
        """
        self.policy = policy or FetchPolicy()
        self._proxy_url = proxy_url
        self._transport = transport

    def is_allowed(self, url: str) -> bool:
        return is_fetch_allowed(
            url,
            allowed_schemes=self.policy.allowed_schemes,
            blocked_host_patterns=self.policy.blocked_host_patterns,
        )

    def _build_client(self, timeout_s: float) -> httpx.AsyncClient:
        kwargs = {"timeout": httpx.Timeout(timeout_s), "follow_redirects": False}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif self._proxy_url:
            kwargs["proxy"] = self._proxy_url
        return httpx.AsyncClient(**kwargs)

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> httpx.Response:
        """
        Fetch a URL.

        Args:
            url: Absolute URL to fetch
            method: HTTP method
            headers: Extra request headers
            timeout_ms: Per-attempt timeout. Uses policy if not provided.
            max_retries: Additional attempts after the first. Uses policy if not provided.

        Returns:
            The final httpx.Response (2xx, 3xx without location, or 4xx)

        Raises:
            SsrfBlockedError: If the URL or a redirect target is not allowed
            FetchTimeoutError: If the last attempt timed out
            FetchNetworkError: If the last attempt failed to connect
            UpstreamStatusError: If the last attempt returned 5xx
        """
        if not self.is_allowed(url):
            raise SsrfBlockedError(f"Private/internal URLs are not allowed: {url}", url=url)

        timeout_s = (timeout_ms if timeout_ms is not None else self.policy.timeout_ms) / 1000
        retries = max(0, max_retries if max_retries is not None else self.policy.max_retries)
        last_error: Optional[FetchError] = None

        async with self._build_client(timeout_s) as client:
            for attempt in range(retries + 1):
                if attempt > 0:
                    delay = self.policy.backoff_seconds(attempt - 1)
                    logger.info(f"Retrying {method} {url} in {delay:.2f}s (attempt {attempt + 1}/{retries + 1})")
                    await asyncio.sleep(delay)

                try:
                    response = await asyncio.wait_for(
                        self._send(client, method, url, headers),
                        timeout=timeout_s,
                    )
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    logger.warning(f"Fetch timed out after {timeout_s}s: {url}")
                    last_error = FetchTimeoutError(
                        f"Timed out after {timeout_s}s", url=url, attempts=attempt + 1
                    )
                    continue
                except httpx.TransportError as e:
                    logger.warning(f"Fetch network error for {url}: {e}")
                    last_error = FetchNetworkError(str(e) or type(e).__name__, url=url, attempts=attempt + 1)
                    continue

                if response.status_code >= 500:
                    logger.warning(f"Upstream returned HTTP {response.status_code} for {url}")
                    last_error = UpstreamStatusError(
                        f"Upstream returned HTTP {response.status_code}",
                        url=url,
                        attempts=attempt + 1,
                        status_code=response.status_code,
                    )
                    continue

                return response

        logger.error(f"Fetch failed after {retries + 1} attempts: {url}")
        raise last_error

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]],
    ) -> httpx.Response:
        """Send one request, following redirects only to allowed targets."""
        current = url
        for _ in range(self.policy.max_redirects + 1):
            request = client.build_request(method, current, headers=headers)
            response = await client.send(request, stream=True)
            location = response.headers.get("location")
            if response.status_code not in REDIRECT_STATUSES or not location:
                return await self._read_capped(response)

            target = urljoin(current, location)
            if not self.is_allowed(target):
                raise SsrfBlockedError(f"Redirect to a private/internal URL is not allowed: {target}", url=target)

            if response.status_code == 303:
                method = "GET"
            await response.aclose()
            current = target

        raise FetchNetworkError(f"Too many redirects (max {self.policy.max_redirects})", url=url)

    async def _read_capped(self, response: httpx.Response) -> httpx.Response:
        """
        Read a streamed body up to policy.max_body_bytes and close the stream.

        Returns a loaded response holding at most max_body_bytes of decoded content.
        """
        limit = self.policy.max_body_bytes
        chunks = []
        size = 0
        try:
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size >= limit:
                    break
        finally:
            await response.aclose()

        if size > limit:
            logger.info(f"Body of {response.request.url} cut off at {limit} bytes")
        body = b"".join(chunks)[:limit]

        # The body is already decoded; drop headers that describe the wire form
        headers = [
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in STRIPPED_BODY_HEADERS
        ]
        return httpx.Response(
            response.status_code,
            headers=headers,
            content=body,
            request=response.request,
        )


# Global fetch client instance
_fetch_client: Optional[FetchClient] = None


def get_fetch_client() -> FetchClient:
    """Get the application's fetch client, built from settings on first use."""
    global _fetch_client

    if _fetch_client is None:
        _fetch_client = FetchClient(
            policy=FetchPolicy.from_settings(),
            proxy_url=settings.proxy_url,
        )

    return _fetch_client


def reset_fetch_client() -> None:
    """Drop the global fetch client (useful for testing)."""
    global _fetch_client
    _fetch_client = None
