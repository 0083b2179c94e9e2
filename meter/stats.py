"""
Network measurement statistics.

Pure functions -- no I/O, no side effects.  Everything here is deterministic
and easy to unit-test.
"""
from __future__ import annotations

import math
import statistics
from typing import List

from .constants import BYTES_PER_MEGABIT


# ---------------------------------------------------------------------------
# Reductions
# ---------------------------------------------------------------------------

def calculate_mean(samples: List[float]) -> float:
    if not samples:
        return 0.0
    return statistics.mean(samples)


def calculate_jitter(samples: List[float]) -> float:
    """Mean absolute difference between consecutive samples."""
    if len(samples) < 2:
        return 0.0
    diffs = [abs(samples[i] - samples[i - 1]) for i in range(1, len(samples))]
    return statistics.mean(diffs)


def calculate_packet_loss(attempted: int, successful: int) -> float:
    """Percentage of attempted probes that did not succeed."""
    if attempted <= 0:
        return 0.0
    return (attempted - successful) / attempted * 100


def calculate_mbps(total_bytes: int, elapsed_seconds: float) -> float:
    """Bits per second over the window, in binary megabits, 2 dp."""
    if elapsed_seconds <= 0 or total_bytes <= 0:
        return 0.0
    bits_per_second = (total_bytes * 8) / elapsed_seconds
    return round_half_up(bits_per_second / BYTES_PER_MEGABIT, 2)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round halves upward (2.5 -> 3.0), unlike the built-in banker's round."""
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def smooth(previous: float, sample: float, alpha: float) -> float:
    """Exponential moving average; the first sample seeds the average."""
    if previous == 0.0:
        return sample
    return alpha * sample + (1 - alpha) * previous


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.0f} ms"
