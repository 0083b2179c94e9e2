"""
HTTP / WebSocket transport used by the measurement phases.

All HTTP work goes through a single ``aiohttp.ClientSession`` managed via the
async-context-manager protocol (``async with HttpTransport() as t: ...``).
Methods raise the underlying transport exceptions (see
:data:`TRANSPORT_ERRORS`); classifying them is the caller's job.

Ping endpoints may be plain ``http(s)://`` URLs, probed with ``HEAD``, or
``ws(s)://`` URLs speaking the Ookla text protocol::

    1. Connect
    2. Receive  HELLO / YOURIP / CAPABILITIES (any subset)
    3. Send     PING {timestamp_ms}
    4. Receive  PONG {server_timestamp}
"""
from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Dict, Optional

import aiohttp
import websockets
import websockets.exceptions

from .constants import CHUNK_SIZE, COMMON_HEADERS, DEFAULT_TIMEOUT_MS, UPLOAD_HEADERS

TRANSPORT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    websockets.exceptions.WebSocketException,
    OSError,
)

_HANDSHAKE_TIMEOUT = 2.0     # max wait for HELLO/YOURIP/CAPABILITIES
_MSG_TIMEOUT = 0.5           # per-message timeout during handshake


@dataclass
class ProbeResult:
    """Outcome of one request that got a response."""

    ok: bool
    status: int = 0
    elapsed_ms: float = 0.0
    error: Optional[str] = None


Prober = Callable[[], Awaitable[ProbeResult]]


def _is_success(status: int) -> bool:
    return 200 <= status < 300


class HttpTransport:
    """Async context manager owning the HTTP session for one run."""

    def __init__(
        self,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        self.timeout = timeout_ms / 1000
        self.headers = {**COMMON_HEADERS, **(headers or {})}
        self._session: Optional[aiohttp.ClientSession] = None

    # -- Context manager ----------------------------------------------------

    async def __aenter__(self) -> HttpTransport:
        self._session = aiohttp.ClientSession(
            headers=self.headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._session:
            await self._session.close()
            self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError(
                "HttpTransport must be used as an async context manager "
                "(async with HttpTransport() as transport: ...)"
            )
        return self._session

    # -- Latency ------------------------------------------------------------

    async def head(self, url: str) -> ProbeResult:
        """Time a single HEAD request."""
        session = self._ensure_session()
        start = time.perf_counter()
        # head() defaults to not following redirects; judge the final response
        async with session.head(url, allow_redirects=True) as resp:
            elapsed = (time.perf_counter() - start) * 1000
            return ProbeResult(ok=_is_success(resp.status), status=resp.status, elapsed_ms=elapsed)

    @asynccontextmanager
    async def open_prober(self, url: str) -> AsyncIterator[Prober]:
        """Yield a zero-argument coroutine function that performs one probe."""
        if url.startswith(("ws://", "wss://")):
            async with websockets.connect(
                url,
                additional_headers=self.headers,
                ping_interval=None,
                close_timeout=2,
                open_timeout=self.timeout,
            ) as ws:
                await _read_handshake(ws)

                async def _ws_probe() -> ProbeResult:
                    return await self._ping_once(ws)

                yield _ws_probe
        else:
            async def _http_probe() -> ProbeResult:
                return await self.head(url)

            yield _http_probe

    async def _ping_once(self, ws) -> ProbeResult:  # noqa: ANN001
        """Send PING, receive PONG, measure RTT."""
        send_time = time.perf_counter()
        await ws.send(f"PING {int(time.time() * 1000)}")
        msg = await asyncio.wait_for(ws.recv(), timeout=self.timeout)
        elapsed = (time.perf_counter() - send_time) * 1000

        if isinstance(msg, str) and msg.startswith("PONG"):
            return ProbeResult(ok=True, elapsed_ms=elapsed)
        return ProbeResult(ok=False, elapsed_ms=elapsed, error=f"Unexpected response: {str(msg)[:50]}")

    # -- Throughput ---------------------------------------------------------

    @asynccontextmanager
    async def stream(self, url: str) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open one streaming GET and yield an iterator over body chunks."""
        session = self._ensure_session()
        # The window, not the request, bounds a download: only reads time out.
        timeout = aiohttp.ClientTimeout(total=None, connect=self.timeout, sock_read=self.timeout)
        headers = {"Accept-Encoding": "identity"}
        async with session.get(url, timeout=timeout, headers=headers) as resp:
            resp.raise_for_status()
            yield resp.content.iter_chunked(CHUNK_SIZE)

    async def post(self, url: str, data: bytes) -> ProbeResult:
        """POST *data* and wait for the full response."""
        session = self._ensure_session()
        start = time.perf_counter()
        async with session.post(url, data=data, headers=UPLOAD_HEADERS) as resp:
            await resp.read()
            elapsed = (time.perf_counter() - start) * 1000
            return ProbeResult(ok=_is_success(resp.status), status=resp.status, elapsed_ms=elapsed)


async def _read_handshake(ws) -> None:  # noqa: ANN001
    """Consume whatever greeting lines the server sends before PING."""
    start = time.perf_counter()
    received = 0

    while time.perf_counter() - start < _HANDSHAKE_TIMEOUT:
        try:
            await asyncio.wait_for(ws.recv(), timeout=_MSG_TIMEOUT)
        except asyncio.TimeoutError:
            break

        received += 1
        if received >= 3:
            break
