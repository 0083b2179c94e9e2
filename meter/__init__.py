"""Network measurement engine -- probes, reductions, run orchestration and history."""

__version__ = "1.0.0"

from .cancel import CancelToken
from .config import TestConfig, load_test_config
from .errors import ErrorType, SpeedTestError
from .history import ResultHistoryStore, sparkline, summarize
from .latency import PingResult, PingSampler
from .models import (
    DeviceInfo,
    MeasurementRecord,
    NetworkInfo,
    ProgressEvent,
    RunState,
    ServerInfo,
)
from .orchestrator import TestOrchestrator
from .retry import RetryController
from .stats import (
    calculate_jitter,
    calculate_mbps,
    calculate_mean,
    calculate_packet_loss,
    format_latency,
    format_speed,
)
from .storage import JsonFileStore, MemoryStore
from .throughput import Direction, ThroughputMeter, ThroughputResult
from .transport import HttpTransport, ProbeResult

__all__ = [
    "CancelToken",
    "DeviceInfo",
    "Direction",
    "ErrorType",
    "HttpTransport",
    "JsonFileStore",
    "MeasurementRecord",
    "MemoryStore",
    "NetworkInfo",
    "PingResult",
    "PingSampler",
    "ProbeResult",
    "ProgressEvent",
    "ResultHistoryStore",
    "RetryController",
    "RunState",
    "ServerInfo",
    "SpeedTestError",
    "TestConfig",
    "TestOrchestrator",
    "ThroughputMeter",
    "ThroughputResult",
    "calculate_jitter",
    "calculate_mbps",
    "calculate_mean",
    "calculate_packet_loss",
    "format_latency",
    "format_speed",
    "load_test_config",
    "sparkline",
    "summarize",
]
