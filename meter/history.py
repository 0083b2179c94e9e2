"""
Result history persistence and summaries.

The whole history is one JSON array stored under a single key of a
key-value backend (see :mod:`meter.storage`), newest record first and never
longer than :data:`~meter.constants.MAX_HISTORY_ITEMS`.
"""
from __future__ import annotations

import json
import logging
import statistics
from typing import Any, Dict, List

from .constants import HISTORY_KEY, MAX_HISTORY_ITEMS
from .models import MeasurementRecord
from .stats import round_half_up

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class ResultHistoryStore:
    """Bounded, most-recent-first list of completed measurements."""

    def __init__(
        self,
        storage,  # noqa: ANN001
        key: str = HISTORY_KEY,
        max_items: int = MAX_HISTORY_ITEMS,
    ) -> None:
        self.storage = storage
        self.key = key
        self.max_items = max_items

    def append(self, record: MeasurementRecord) -> None:
        """Insert *record* at the head and drop anything beyond the cap."""
        history = self.load()
        history.insert(0, record)
        del history[self.max_items:]
        self.storage.set(self.key, json.dumps([r.to_dict() for r in history], ensure_ascii=False))

    def load(self) -> List[MeasurementRecord]:
        blob = self.storage.get(self.key)
        if not blob:
            return []

        try:
            raw = json.loads(blob)
        except json.JSONDecodeError as exc:
            logger.warning("Discarding corrupt history blob: %s", exc)
            return []
        if not isinstance(raw, list):
            logger.warning("Discarding history blob of type %s", type(raw).__name__)
            return []

        records: List[MeasurementRecord] = []
        for entry in raw:
            try:
                records.append(MeasurementRecord.from_dict(entry))
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Skipping malformed history entry: %s", exc)
        return records[: self.max_items]

    def clear(self) -> None:
        self.storage.remove(self.key)


# ---------------------------------------------------------------------------
# Summaries
# ---------------------------------------------------------------------------

def summarize(records: List[MeasurementRecord]) -> Dict[str, Any]:
    """Averages over *records* (expected newest first)."""
    if not records:
        return {
            "average_download": 0.0,
            "average_upload": 0.0,
            "average_ping": 0.0,
            "total_tests": 0,
            "last_test_date": None,
        }

    return {
        "average_download": round_half_up(statistics.mean(r.download_mbps for r in records), 2),
        "average_upload": round_half_up(statistics.mean(r.upload_mbps for r in records), 2),
        "average_ping": round_half_up(statistics.mean(r.ping_ms for r in records)),
        "total_tests": len(records),
        "last_test_date": records[0].timestamp,
    }


def sparkline(values: List[float]) -> str:
    """Single-line Unicode sparkline chart."""
    if not values:
        return ""
    bars = "▁▂▃▄▅▆▇█"
    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    return "".join(
        bars[min(int((v - lo) / span * (len(bars) - 1)), len(bars) - 1)]
        for v in values
    )
