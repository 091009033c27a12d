"""
Async HTTP client wrapper with failure classification and optional retry.

Every low-level failure is mapped onto a TransportError carrying one of the
TransportErrorKind values:
- UNSUPPORTED_SCHEME: anything other than http/https.
- INVALID_URL: control characters or an unparseable URL.
- CONNECTION: DNS, connect, read and protocol failures.
- TIMEOUT: the per-request timeout elapsed.
- HTTP_STATUS: any non-2xx response, status code kept on the error.

Retry policy (off by default, see Settings.max_retries):
- Retries on network errors and on HTTP 429, 500, 502, 503, 504.
- Exponential back-off with jitter, capped at 30 s per wait.
- Respects Retry-After header on 429 responses.
- Never retries other 4xx responses or URL errors.
"""

import asyncio
import logging
import random
import re
from typing import Any
from urllib.parse import urlsplit

import httpx

from ..config import get_settings
from ..errors import TransportError
from ..models.enums import TransportErrorKind
from .stream import Stream

logger = logging.getLogger(__name__)

# Maximum back-off wait time (seconds) between retries
_MAX_BACKOFF = 30.0

# HTTP status codes that trigger an automatic retry
_RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_SUPPORTED_SCHEMES = {"http", "https"}

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f]")

# httpx exception types that represent transient network problems
_NETWORK_ERRORS = (
    httpx.TimeoutException,  # base for all timeout variants
    httpx.ConnectError,
    httpx.ReadError,
    httpx.WriteError,
    httpx.RemoteProtocolError,
    httpx.CloseError,
)


def check_url(url: str):
    """Reject URLs the transport cannot fetch before any I/O happens."""
    if _CONTROL_CHARS_RE.search(url):
        raise TransportError(
            TransportErrorKind.INVALID_URL,
            f"parse {url!r}: invalid control character in URL",
        )
    scheme = url.split(":", 1)[0].lower() if ":" in url else ""
    if scheme not in _SUPPORTED_SCHEMES:
        raise TransportError(
            TransportErrorKind.UNSUPPORTED_SCHEME,
            f'unsupported protocol scheme "{scheme}"',
        )
    if not urlsplit(url).hostname:
        raise TransportError(TransportErrorKind.INVALID_URL, f"no host in request URL {url!r}")


def classify_error(exc: Exception, url: str) -> TransportError:
    """Map an httpx exception onto the transport error taxonomy."""
    if isinstance(exc, TransportError):
        return exc
    if isinstance(exc, httpx.UnsupportedProtocol):
        return TransportError(TransportErrorKind.UNSUPPORTED_SCHEME, f"unsupported protocol scheme: {exc}")
    if isinstance(exc, httpx.InvalidURL):
        return TransportError(TransportErrorKind.INVALID_URL, f"invalid URL {url!r}: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return TransportError(TransportErrorKind.TIMEOUT, f"timeout fetching {url}: {exc}")
    host = urlsplit(url).hostname or url
    return TransportError(TransportErrorKind.CONNECTION, f"dial tcp {host}: {exc}")


def check_status(response: httpx.Response):
    if not 200 <= response.status_code < 300:
        raise TransportError(
            TransportErrorKind.HTTP_STATUS,
            f"unexpected status code: {response.status_code}",
            status_code=response.status_code,
        )


class HTTPClient:
    """
    Async HTTP client with failure classification and configurable headers.
    Wraps httpx.AsyncClient.
    """

    def __init__(
        self,
        timeout: int | None = None,
        max_retries: int | None = None,
        headers: dict[str, str] | None = None,
        follow_redirects: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        self._timeout = timeout or settings.request_timeout
        self._max_retries = settings.max_retries if max_retries is None else max_retries
        self._follow_redirects = follow_redirects
        self._transport = transport

        default_headers = {
            "User-Agent": settings.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        }
        if headers:
            default_headers.update(headers)

        self._default_headers = default_headers
        self._client: httpx.AsyncClient | None = None

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(
                    self._timeout,
                    connect=10.0,
                    read=self._timeout,
                    write=10.0,
                    pool=10.0,
                ),
                follow_redirects=self._follow_redirects,
                headers=self._default_headers,
                http2=self._transport is None,
                transport=self._transport,
                limits=httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=10,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Core request with retry
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        data: Any = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """
        Make an HTTP request and return the response whatever its status.

        Raises TransportError for URL and network failures. When retries are
        enabled, network errors and HTTP 429 / 5xx responses are retried with
        exponential back-off (2^attempt + jitter, capped at 30 s); on 429 the
        Retry-After header is respected if present.
        """
        check_url(url)
        client = self._get_client()
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    data=data,
                    json=json,
                    timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
                )

                # ---- check for retryable HTTP status ----
                if response.status_code in _RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    wait = self._backoff(attempt, response)
                    logger.warning(
                        "HTTP %d from %s %s (attempt %d/%d). Retrying in %.1fs...",
                        response.status_code,
                        method,
                        url,
                        attempt + 1,
                        self._max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                    continue

                logger.debug("%s %s -> %d", method, url, response.status_code)
                return response

            except _NETWORK_ERRORS as exc:
                last_error = exc
                if attempt < self._max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(
                        "%s on %s %s (attempt %d/%d). Retrying in %.1fs...",
                        type(exc).__name__,
                        method,
                        url,
                        attempt + 1,
                        self._max_retries + 1,
                        wait,
                    )
                    await asyncio.sleep(wait)
                else:
                    logger.debug("%s on %s %s: %s", type(exc).__name__, method, url, exc)
            except httpx.HTTPError as exc:
                raise classify_error(exc, url) from exc

        # All retries exhausted
        if last_error is not None:
            raise classify_error(last_error, url) from last_error
        raise TransportError(TransportErrorKind.CONNECTION, f"all retries exhausted for {url}")

    # ------------------------------------------------------------------
    # Back-off calculation
    # ------------------------------------------------------------------

    @staticmethod
    def _backoff(
        attempt: int,
        response: httpx.Response | None = None,
    ) -> float:
        """
        Compute wait time with exponential back-off + jitter, capped.

        If *response* is a 429 with a Retry-After header, that value is
        used as a floor.
        """
        base = min((2**attempt) + random.uniform(0, 1), _MAX_BACKOFF)

        if response is not None and response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    ra = float(retry_after)
                    base = max(base, min(ra, _MAX_BACKOFF))
                except ValueError:
                    pass

        return base

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def get_bytes(self, url: str, **kwargs) -> bytes:
        """GET request returning the body; non-2xx raises TransportError."""
        response = await self.get(url, **kwargs)
        check_status(response)
        return response.content

    async def get_text(self, url: str, **kwargs) -> str:
        """GET request returning response text."""
        response = await self.get(url, **kwargs)
        check_status(response)
        return response.text

    async def post_json(self, url: str, **kwargs) -> Any:
        """POST request returning parsed JSON."""
        response = await self.post(url, **kwargs)
        check_status(response)
        return response.json()

    async def open_stream(
        self,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> Stream:
        """
        Start a GET and return a Stream over the body without reading it.

        The connection stays checked out until the stream is exhausted or
        closed.
        """
        check_url(url)
        client = self._get_client()
        request = client.build_request(
            "GET",
            url,
            headers=headers,
            timeout=timeout if timeout is not None else httpx.USE_CLIENT_DEFAULT,
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            raise classify_error(exc, url) from exc

        if not 200 <= response.status_code < 300:
            await response.aclose()
            check_status(response)
        return Stream(response)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
