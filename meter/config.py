"""
Run configuration and the user configuration file.

Reads/writes ``~/.netmeter/config.json``.  Missing keys fall back to
:data:`DEFAULTS`; a corrupt file is ignored.

Supported keys::

    test_duration_seconds = 10      # per throughput phase, 5..60
    download_endpoint = "https://speed.cloudflare.com/__down"
    upload_endpoint = "https://speed.cloudflare.com/__up"
    ping_endpoint = "https://1.1.1.1"  # http(s) HEAD or ws(s) PING/PONG
    max_concurrent_connections = 4  # reserved
    retry_attempts = 3
    timeout_ms = 30000
    ping_count = 10
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .constants import (
    DEFAULT_CONNECTIONS,
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_TIMEOUT_MS,
    DOWNLOAD_URL,
    MAX_CONNECTIONS,
    MAX_DURATION,
    MAX_PING_COUNT,
    MAX_RETRY_ATTEMPTS,
    MIN_CONNECTIONS,
    MIN_DURATION,
    MIN_PING_COUNT,
    PING_URL,
    UPLOAD_URL,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".netmeter")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


def data_dir() -> str:
    """Directory holding config, history storage and logs."""
    return _CONFIG_DIR


# ---------------------------------------------------------------------------
# Run configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestConfig:
    """Options recognised by a single measurement run."""

    __test__ = False  # not a pytest test class

    test_duration_seconds: float = DEFAULT_DURATION
    download_endpoint: str = DOWNLOAD_URL
    upload_endpoint: str = UPLOAD_URL
    ping_endpoint: str = PING_URL
    max_concurrent_connections: int = DEFAULT_CONNECTIONS
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    ping_count: int = DEFAULT_PING_COUNT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TestConfig:
        """Build from a mapping, ignoring keys this class does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def merged(self, overrides: Optional[Mapping[str, Any]]) -> TestConfig:
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known})

    def validate(self) -> None:
        """Raise ``ValueError`` if any option is out of range."""
        if not MIN_DURATION <= self.test_duration_seconds <= MAX_DURATION:
            raise ValueError(
                f"Test duration must be between {MIN_DURATION} and {MAX_DURATION} s"
            )
        if not MIN_PING_COUNT <= self.ping_count <= MAX_PING_COUNT:
            raise ValueError(
                f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}"
            )
        if not MIN_CONNECTIONS <= self.max_concurrent_connections <= MAX_CONNECTIONS:
            raise ValueError(
                f"Connections must be between {MIN_CONNECTIONS} and {MAX_CONNECTIONS}"
            )
        if not 0 <= self.retry_attempts <= MAX_RETRY_ATTEMPTS:
            raise ValueError(f"Retry attempts must be between 0 and {MAX_RETRY_ATTEMPTS}")
        if self.timeout_ms <= 0:
            raise ValueError("Timeout must be positive")
        for name in ("download_endpoint", "upload_endpoint", "ping_endpoint"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


DEFAULTS: Dict[str, Any] = TestConfig().to_dict()
DEFAULTS["log_level"] = "WARNING"


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update(user)
    except (json.JSONDecodeError, IOError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    """Get a single config value."""
    return load_config().get(key, DEFAULTS.get(key))


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    config = load_config()
    config[key] = value
    return save_config(config)


def load_test_config() -> TestConfig:
    """The run configuration described by the config file."""
    return TestConfig.from_dict(load_config())


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()
