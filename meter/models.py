"""
Data models shared by the measurement engine.

Descriptors (server, device, network) are plain dataclasses with
``to_dict`` / ``from_dict`` so a :class:`MeasurementRecord` can be written
to and read back from the history store without loss.
"""
from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_SERVER_ID,
    DEFAULT_SERVER_LOCATION,
    DEFAULT_SERVER_NAME,
    DOWNLOAD_URL,
    PING_URL,
    UPLOAD_URL,
)


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------

class RunState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    TESTING_PING = "testing-ping"
    TESTING_DOWNLOAD = "testing-download"
    TESTING_UPLOAD = "testing-upload"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class ProgressEvent:
    """One progress notification; superseded by the next."""

    state: RunState
    progress: float
    current_speed: Optional[float] = None
    estimated_time_remaining: Optional[float] = None


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ServerInfo:
    """The endpoint set a run measures against."""

    id: str
    name: str
    location: str
    distance: float = 0.0
    ping: float = 0.0
    ping_url: str = PING_URL
    download_url: str = DOWNLOAD_URL
    upload_url: str = UPLOAD_URL

    @classmethod
    def default(cls) -> ServerInfo:
        return cls(
            id=DEFAULT_SERVER_ID,
            name=DEFAULT_SERVER_NAME,
            location=DEFAULT_SERVER_LOCATION,
        )

    @classmethod
    def from_dict(cls, data: dict) -> ServerInfo:
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            location=data.get("location", ""),
            distance=float(data.get("distance", 0)),
            ping=float(data.get("ping", 0)),
            ping_url=data.get("ping_url", PING_URL),
            download_url=data.get("download_url", DOWNLOAD_URL),
            upload_url=data.get("upload_url", UPLOAD_URL),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "distance": self.distance,
            "ping": self.ping,
            "ping_url": self.ping_url,
            "download_url": self.download_url,
            "upload_url": self.upload_url,
        }


@dataclass(frozen=True)
class DeviceInfo:
    platform: str
    model: str
    os_version: str
    app_version: str

    @classmethod
    def from_dict(cls, data: dict) -> DeviceInfo:
        return cls(
            platform=data.get("platform", ""),
            model=data.get("model", "Unknown"),
            os_version=data.get("os_version", ""),
            app_version=data.get("app_version", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "platform": self.platform,
            "model": self.model,
            "os_version": self.os_version,
            "app_version": self.app_version,
        }


_CONNECTION_TYPES = ("wifi", "cellular", "unknown")


def map_connection_type(value: Optional[str]) -> str:
    """Collapse any platform-specific link type to wifi / cellular / unknown."""
    value = (value or "").lower()
    return value if value in _CONNECTION_TYPES else "unknown"


@dataclass(frozen=True)
class NetworkInfo:
    connection_type: str = "unknown"
    is_connected: bool = False
    is_internet_reachable: bool = False
    carrier: Optional[str] = None
    ip_address: Optional[str] = None

    @property
    def is_available(self) -> bool:
        return self.is_connected and self.is_internet_reachable

    @classmethod
    def from_dict(cls, data: dict) -> NetworkInfo:
        return cls(
            connection_type=map_connection_type(data.get("connection_type")),
            is_connected=bool(data.get("is_connected", False)),
            is_internet_reachable=bool(data.get("is_internet_reachable", False)),
            carrier=data.get("carrier"),
            ip_address=data.get("ip_address"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "connection_type": self.connection_type,
            "is_connected": self.is_connected,
            "is_internet_reachable": self.is_internet_reachable,
            "carrier": self.carrier,
            "ip_address": self.ip_address,
        }


# ---------------------------------------------------------------------------
# Measurement record
# ---------------------------------------------------------------------------

def generate_test_id() -> str:
    """``test_<epoch ms>_<9 random base-36 chars>``."""
    alphabet = string.digits + string.ascii_lowercase
    suffix = "".join(random.choice(alphabet) for _ in range(9))
    return f"test_{int(time.time() * 1000)}_{suffix}"


@dataclass(frozen=True)
class MeasurementRecord:
    """Result of one completed run.  Never mutated after creation."""

    id: str
    timestamp: datetime
    download_mbps: float
    upload_mbps: float
    ping_ms: float
    jitter_ms: float
    packet_loss_pct: float
    server: ServerInfo
    device: DeviceInfo
    network: NetworkInfo

    @classmethod
    def from_dict(cls, data: dict) -> MeasurementRecord:
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            id=str(data["id"]),
            timestamp=ts,
            download_mbps=float(data.get("download_mbps", 0)),
            upload_mbps=float(data.get("upload_mbps", 0)),
            ping_ms=float(data.get("ping_ms", 0)),
            jitter_ms=float(data.get("jitter_ms", 0)),
            packet_loss_pct=float(data.get("packet_loss_pct", 0)),
            server=ServerInfo.from_dict(data.get("server", {})),
            device=DeviceInfo.from_dict(data.get("device", {})),
            network=NetworkInfo.from_dict(data.get("network", {})),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "download_mbps": self.download_mbps,
            "upload_mbps": self.upload_mbps,
            "ping_ms": self.ping_ms,
            "jitter_ms": self.jitter_ms,
            "packet_loss_pct": self.packet_loss_pct,
            "server": self.server.to_dict(),
            "device": self.device.to_dict(),
            "network": self.network.to_dict(),
        }
