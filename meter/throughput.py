"""
Throughput measurement for one direction over a fixed time window.

Download reads a single streaming GET; upload sends fixed-size POST bodies
back to back.  Both stop when the window elapses, the token is cancelled,
or (download only) the stream ends.  The final speed is total bytes over
wall-clock elapsed time; a window that moved no bytes yields 0 Mbps rather
than an error.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .cancel import CancelToken
from .constants import BYTES_PER_MEGABIT, EMA_ALPHA, UPLOAD_CHUNK_SIZE, UPLOAD_FILL
from .errors import ErrorType, SpeedTestError
from .stats import calculate_mbps, smooth
from .transport import TRANSPORT_ERRORS

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, float], None]


class Direction(str, Enum):
    DOWNLOAD = "download"
    UPLOAD = "upload"


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class ThroughputResult:
    """Throughput test result."""

    direction: Direction
    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0

    def calculate(self) -> None:
        """Derive speed from total bytes and wall-clock duration."""
        self.speed_mbps = calculate_mbps(self.bytes_total, self.duration_ms / 1000)

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "speed_mbps": self.speed_mbps,
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
        }


# ---------------------------------------------------------------------------
# Meter
# ---------------------------------------------------------------------------

class ThroughputMeter:
    """
    Sequential single-connection throughput meter.

    ``on_progress(fraction, current_mbps)`` is called after every chunk with
    the elapsed fraction of the window (0..1) and an EMA-smoothed speed.
    """

    def __init__(
        self,
        transport,  # noqa: ANN001
        chunk_size: int = UPLOAD_CHUNK_SIZE,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.transport = transport
        self.clock = clock
        self._payload = UPLOAD_FILL * chunk_size

    async def measure(
        self,
        direction: Direction,
        url: str,
        duration_seconds: float,
        token: CancelToken,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ThroughputResult:
        result = ThroughputResult(direction=direction)
        window = _Window(self.clock, duration_seconds, on_progress)

        try:
            if direction is Direction.DOWNLOAD:
                await self._download(url, token, window)
            else:
                await self._upload(url, token, window)
        except TRANSPORT_ERRORS as exc:
            raise SpeedTestError(
                ErrorType.SERVER_UNREACHABLE,
                f"{direction.value.capitalize()} test failed",
                {"url": url, "error": str(exc)},
            ) from exc

        result.bytes_total = window.total_bytes
        result.duration_ms = window.elapsed() * 1000
        result.calculate()

        logger.info(
            "%s %.2f Mbps (%d bytes in %.1f s)",
            direction.value.capitalize(),
            result.speed_mbps,
            result.bytes_total,
            result.duration_ms / 1000,
        )
        return result

    # -- Directions ---------------------------------------------------------

    async def _download(self, url: str, token: CancelToken, window: _Window) -> None:
        async with self.transport.stream(url) as chunks:
            async for chunk in chunks:
                window.add(len(chunk))
                if token.cancelled or window.expired():
                    break

    async def _upload(self, url: str, token: CancelToken, window: _Window) -> None:
        size = len(self._payload)
        while not token.cancelled and not window.expired():
            response = await self.transport.post(url, self._payload)
            window.add(size if response.ok else 0)


class _Window:
    """Byte accounting and progress for one measurement window."""

    def __init__(
        self,
        clock: Callable[[], float],
        duration: float,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        self.clock = clock
        self.duration = duration
        self.on_progress = on_progress
        self.start = clock()
        self.total_bytes = 0
        self._last_time = self.start
        self._last_bytes = 0
        self._smoothed = 0.0

    def elapsed(self) -> float:
        return self.clock() - self.start

    def expired(self) -> bool:
        return self.elapsed() >= self.duration

    def add(self, n: int) -> None:
        self.total_bytes += n

        now = self.clock()
        dt = now - self._last_time
        if dt > 0:
            sample = ((self.total_bytes - self._last_bytes) * 8) / dt / BYTES_PER_MEGABIT
            self._smoothed = smooth(self._smoothed, sample, EMA_ALPHA)
            self._last_time = now
            self._last_bytes = self.total_bytes

        if self.on_progress:
            fraction = min((now - self.start) / self.duration, 1.0) if self.duration > 0 else 1.0
            self.on_progress(fraction, self._smoothed)
