"""
Error taxonomy for a measurement run.

Every failure that leaves a phase is a :class:`SpeedTestError` carrying one
:class:`ErrorType`.  Phases classify at their own boundary; the orchestrator
only propagates.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    NETWORK_UNAVAILABLE = "network-unavailable"
    SERVER_UNREACHABLE = "server-unreachable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown-error"


class SpeedTestError(Exception):
    """A classified measurement failure."""

    def __init__(
        self,
        type: ErrorType,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.type = type
        self.message = message
        self.details: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if details:
            self.details.update(details)

    @property
    def retryable(self) -> bool:
        return self.type is ErrorType.NETWORK_UNAVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "details": dict(self.details),
        }

    def __repr__(self) -> str:
        return f"SpeedTestError({self.type.value!r}, {self.message!r})"
