"""Lazily consumed media byte stream."""

import logging
from collections.abc import AsyncIterator

import httpx

from ..errors import TransportError
from ..models.enums import TransportErrorKind

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


class Stream:
    """
    Body of an in-flight GET.

    Nothing is transferred until the stream is iterated or read. ``size`` is
    the declared Content-Length (None when the server does not send one).
    Closing the stream, or leaving its ``async with`` block, releases the
    underlying connection even when the body was only partially read.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = _CHUNK_SIZE):
        self._response = response
        self._chunk_size = chunk_size
        self._iterator: AsyncIterator[bytes] | None = None
        self._buffer = b""
        self.bytes_read = 0

        length = response.headers.get("Content-Length")
        self.size: int | None = int(length) if length and length.isdigit() else None

    @property
    def closed(self) -> bool:
        return self._response.is_closed

    @property
    def url(self) -> str:
        return str(self._response.url)

    async def _buffered(self) -> AsyncIterator[bytes]:
        content = self._response.content
        for start in range(0, len(content), self._chunk_size):
            yield content[start : start + self._chunk_size]

    async def _next_chunk(self) -> bytes:
        if self._iterator is None:
            if self._response.is_stream_consumed:
                # Body already loaded by the transport
                self._iterator = self._buffered()
            else:
                # Raw bytes so the count matches the declared Content-Length
                self._iterator = self._response.aiter_raw(self._chunk_size)
        try:
            chunk = await self._iterator.__anext__()
        except StopAsyncIteration:
            await self.aclose()
            return b""
        except httpx.TimeoutException as exc:
            await self.aclose()
            raise TransportError(TransportErrorKind.TIMEOUT, f"timeout reading {self.url}: {exc}") from exc
        except httpx.HTTPError as exc:
            await self.aclose()
            raise TransportError(TransportErrorKind.CONNECTION, f"read {self.url}: {exc}") from exc
        self.bytes_read += len(chunk)
        return chunk

    async def read(self, n: int = -1) -> bytes:
        """Read up to *n* bytes (everything left when n < 0). Empty bytes means EOF."""
        if n < 0:
            parts = [self._buffer]
            self._buffer = b""
            while chunk := await self._next_chunk():
                parts.append(chunk)
            return b"".join(parts)

        while len(self._buffer) < n:
            chunk = await self._next_chunk()
            if not chunk:
                break
            self._buffer += chunk
        data, self._buffer = self._buffer[:n], self._buffer[n:]
        return data

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self._buffer:
            data, self._buffer = self._buffer, b""
            return data
        chunk = await self._next_chunk()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def aclose(self):
        if not self._response.is_closed:
            logger.debug("Closing stream %s after %d bytes", self.url, self.bytes_read)
            await self._response.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()
