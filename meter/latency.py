"""
Latency measurement: a fixed number of sequential probes reduced to mean
latency, jitter and packet loss.

A probe that errors or answers with a non-success status counts as lost but
never aborts sampling; only a run with zero successful probes fails.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from .cancel import CancelToken
from .constants import DEFAULT_PING_COUNT, PING_INTERVAL
from .errors import ErrorType, SpeedTestError
from .models import ServerInfo
from .stats import calculate_jitter, calculate_mean, calculate_packet_loss, round_half_up
from .transport import TRANSPORT_ERRORS

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class PingResult:
    """Reduced latency statistics for one sampling session."""

    pings: List[float] = field(default_factory=list)
    attempted: int = 0
    latency_ms: float = 0.0
    jitter_ms: float = 0.0
    packet_loss: float = 0.0

    @property
    def successful(self) -> int:
        return len(self.pings)

    def calculate(self) -> None:
        """Derive mean latency, jitter and loss from the collected pings."""
        self.latency_ms = round_half_up(calculate_mean(self.pings))
        self.jitter_ms = round_half_up(calculate_jitter(self.pings))
        self.packet_loss = round_half_up(
            calculate_packet_loss(self.attempted, self.successful), 1
        )

    def to_dict(self) -> dict:
        return {
            "pings": [round(p, 1) for p in self.pings],
            "attempted": self.attempted,
            "latency_ms": self.latency_ms,
            "jitter_ms": self.jitter_ms,
            "packet_loss": self.packet_loss,
        }


# ---------------------------------------------------------------------------
# Sampler
# ---------------------------------------------------------------------------

class PingSampler:
    """Sequential latency probes against a server's ping endpoint."""

    def __init__(self, transport, interval: float = PING_INTERVAL) -> None:  # noqa: ANN001
        self.transport = transport
        self.interval = interval

    async def sample(
        self,
        server: ServerInfo,
        token: CancelToken,
        sample_count: int = DEFAULT_PING_COUNT,
    ) -> PingResult:
        result = PingResult()

        try:
            async with self.transport.open_prober(server.ping_url) as probe:
                for _ in range(sample_count):
                    token.raise_if_cancelled()
                    result.attempted += 1

                    try:
                        outcome = await probe()
                    except TRANSPORT_ERRORS as exc:
                        logger.debug("Probe %d failed: %s", result.attempted, exc)
                    else:
                        if outcome.ok:
                            result.pings.append(outcome.elapsed_ms)
                        else:
                            logger.debug(
                                "Probe %d rejected (status %s)", result.attempted, outcome.status
                            )

                    await token.sleep(self.interval)
        except TRANSPORT_ERRORS as exc:
            raise SpeedTestError(
                ErrorType.SERVER_UNREACHABLE,
                "Could not reach ping server",
                {"url": server.ping_url, "error": str(exc)},
            ) from exc

        if not result.pings:
            raise SpeedTestError(
                ErrorType.SERVER_UNREACHABLE,
                "Could not reach ping server",
                {"url": server.ping_url, "attempted": result.attempted},
            )

        result.calculate()
        logger.info(
            "Ping %.0f ms, jitter %.0f ms, loss %.1f%% (%d/%d)",
            result.latency_ms,
            result.jitter_ms,
            result.packet_loss,
            result.successful,
            result.attempted,
        )
        return result
