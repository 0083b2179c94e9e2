"""
Test orchestrator -- the run state machine.

One orchestrator runs at most one measurement at a time::

    IDLE -> CONNECTING -> TESTING_PING -> TESTING_DOWNLOAD
         -> TESTING_UPLOAD -> COMPLETED
                 \\-> ERROR (any phase failure)
                 \\-> IDLE  (stop())

Phases always run in that order.  Each run gets its own :class:`_Run`
(config, cancel token, selected server) which is handed to every phase; the
orchestrator itself only keeps the current run and the observable state.
A cancelled run checks its token between phases and fails with
``CANCELLED``; a failed run never produces a partial record.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

from .cancel import CancelToken
from .config import TestConfig
from .constants import (
    PING_INTERVAL,
    PROGRESS_COMPLETE,
    PROGRESS_CONNECTING,
    PROGRESS_DOWNLOAD_END,
    PROGRESS_DOWNLOAD_START,
    PROGRESS_PING,
    PROGRESS_UPLOAD_END,
    PROGRESS_UPLOAD_START,
)
from .environment import get_device_info, get_network_info
from .errors import ErrorType, SpeedTestError
from .history import ResultHistoryStore
from .latency import PingSampler
from .models import (
    DeviceInfo,
    MeasurementRecord,
    NetworkInfo,
    ProgressEvent,
    RunState,
    ServerInfo,
    generate_test_id,
)
from .throughput import Direction, ThroughputMeter
from .transport import HttpTransport

logger = logging.getLogger(__name__)

ProgressSink = Callable[[ProgressEvent], None]
ConfigLike = Union[TestConfig, Mapping[str, Any], None]


def _default_transport(config: TestConfig) -> HttpTransport:
    return HttpTransport(timeout_ms=config.timeout_ms)


@dataclass
class _Run:
    """State owned by one run and passed to each of its phases."""

    config: TestConfig
    token: CancelToken
    server: Optional[ServerInfo] = None


class TestOrchestrator:
    """Sequences ping, download and upload into one :class:`MeasurementRecord`."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        on_progress: Optional[ProgressSink] = None,
        history: Optional[ResultHistoryStore] = None,
        config: Optional[TestConfig] = None,
        transport_factory: Callable[[TestConfig], Any] = _default_transport,
        network_info: Callable[[], Awaitable[NetworkInfo]] = get_network_info,
        device_info: Optional[DeviceInfo] = None,
        ping_interval: float = PING_INTERVAL,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.on_progress = on_progress
        self.history = history
        self.config = config or TestConfig()
        self.transport_factory = transport_factory
        self.ping_interval = ping_interval
        self.clock = clock
        self._network_info = network_info
        self._device_info = device_info

        self._state = RunState.IDLE
        self._run: Optional[_Run] = None

    # -- Public API ---------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    def is_running(self) -> bool:
        return self._run is not None and not self._run.token.cancelled

    async def get_network_info(self) -> NetworkInfo:
        return await self._network_info()

    def get_device_info(self) -> DeviceInfo:
        if self._device_info is None:
            self._device_info = get_device_info()
        return self._device_info

    async def start(self, config: ConfigLike = None) -> MeasurementRecord:
        """Run the full sequence and return the stored record.

        Raises :class:`SpeedTestError` on any failure.  A second call while a
        run is active (or still unwinding after :meth:`stop`) is rejected with
        ``UNKNOWN``.
        """
        if self._run is not None:
            raise SpeedTestError(ErrorType.UNKNOWN, "Test already running")

        try:
            run_config = self._resolve_config(config)
        except (TypeError, ValueError) as exc:
            raise SpeedTestError(ErrorType.UNKNOWN, f"Invalid configuration: {exc}") from exc

        run = _Run(config=run_config, token=CancelToken())
        self._run = run

        try:
            network = await self._network_info()
            if not network.is_connected:
                raise SpeedTestError(ErrorType.NETWORK_UNAVAILABLE, "No network connection")
            if not network.is_available:
                # only a missing link is fatal; the probes decide the rest
                logger.warning("Internet reachability check failed; measuring anyway")

            record = await self._execute(run, network, self.get_device_info())
            self._save(record)
            return record

        except SpeedTestError as exc:
            error = self._classify(run, exc)
            self._fail(run, error)
            if error is exc:
                raise
            raise error from exc
        except Exception as exc:
            error = self._classify(
                run,
                SpeedTestError(
                    ErrorType.UNKNOWN,
                    str(exc) or type(exc).__name__,
                    {"exception": type(exc).__name__},
                ),
            )
            self._fail(run, error)
            raise error from exc
        finally:
            self._run = None

    def stop(self) -> None:
        """Request cancellation of the active run.  No-op when idle."""
        run = self._run
        if run is None or run.token.cancelled:
            return

        logger.info("Stop requested")
        run.token.cancel()
        self._state = RunState.IDLE
        self._notify(ProgressEvent(state=RunState.IDLE, progress=0.0))

    # -- Sequence -----------------------------------------------------------

    async def _execute(
        self,
        run: _Run,
        network: NetworkInfo,
        device: DeviceInfo,
    ) -> MeasurementRecord:
        config = run.config
        duration = config.test_duration_seconds

        run.server = self._select_server(config)
        self._update(run, RunState.CONNECTING, PROGRESS_CONNECTING)

        async with self.transport_factory(config) as transport:
            self._update(run, RunState.TESTING_PING, PROGRESS_PING)
            sampler = PingSampler(transport, interval=self.ping_interval)
            ping = await sampler.sample(run.server, run.token, config.ping_count)
            run.server = replace(run.server, ping=ping.latency_ms)
            run.token.raise_if_cancelled()

            meter = ThroughputMeter(transport, clock=self.clock)

            self._update(run, RunState.TESTING_DOWNLOAD, PROGRESS_DOWNLOAD_START)
            download = await meter.measure(
                Direction.DOWNLOAD,
                run.server.download_url,
                duration,
                run.token,
                self._band(
                    run,
                    RunState.TESTING_DOWNLOAD,
                    PROGRESS_DOWNLOAD_START,
                    PROGRESS_DOWNLOAD_END,
                    duration,
                    remaining_after=duration,
                ),
            )
            run.token.raise_if_cancelled()

            self._update(run, RunState.TESTING_UPLOAD, PROGRESS_UPLOAD_START)
            upload = await meter.measure(
                Direction.UPLOAD,
                run.server.upload_url,
                duration,
                run.token,
                self._band(
                    run,
                    RunState.TESTING_UPLOAD,
                    PROGRESS_UPLOAD_START,
                    PROGRESS_UPLOAD_END,
                    duration,
                    remaining_after=0.0,
                ),
            )
            run.token.raise_if_cancelled()

        self._update(run, RunState.COMPLETED, PROGRESS_COMPLETE)

        return MeasurementRecord(
            id=generate_test_id(),
            timestamp=datetime.now(timezone.utc),
            download_mbps=download.speed_mbps,
            upload_mbps=upload.speed_mbps,
            ping_ms=ping.latency_ms,
            jitter_ms=ping.jitter_ms,
            packet_loss_pct=ping.packet_loss,
            server=run.server,
            device=device,
            network=network,
        )

    def _resolve_config(self, config: ConfigLike) -> TestConfig:
        if isinstance(config, TestConfig):
            resolved = config
        else:
            resolved = self.config.merged(config)
        resolved.validate()
        return resolved

    @staticmethod
    def _select_server(config: TestConfig) -> ServerInfo:
        return replace(
            ServerInfo.default(),
            ping_url=config.ping_endpoint,
            download_url=config.download_endpoint,
            upload_url=config.upload_endpoint,
        )

    def _save(self, record: MeasurementRecord) -> None:
        if self.history is None:
            return
        try:
            self.history.append(record)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save test result %s: %s", record.id, exc)

    # -- State & progress ---------------------------------------------------

    @staticmethod
    def _classify(run: _Run, error: SpeedTestError) -> SpeedTestError:
        """Once stop() was requested, whatever ended the run reports CANCELLED."""
        if run.token.cancelled and error.type is not ErrorType.CANCELLED:
            return SpeedTestError(ErrorType.CANCELLED, "Test was stopped by user")
        return error

    def _fail(self, run: _Run, error: SpeedTestError) -> None:
        if error.type is ErrorType.CANCELLED:
            logger.info("Test cancelled")
            return
        logger.error("Test failed (%s): %s", error.type.value, error.message)
        self._update(run, RunState.ERROR, 0.0)

    def _update(self, run: _Run, state: RunState, progress: float, **extra: Any) -> None:
        if run.token.cancelled:
            return
        if state is not self._state:
            logger.debug("State %s -> %s", self._state.value, state.value)
        self._state = state
        self._notify(ProgressEvent(state=state, progress=progress, **extra))

    def _band(
        self,
        run: _Run,
        state: RunState,
        low: float,
        high: float,
        duration: float,
        remaining_after: float,
    ) -> Callable[[float, float], None]:
        """Map a phase's 0..1 progress onto the run's [low, high] percent band."""

        def _on_progress(fraction: float, speed_mbps: float) -> None:
            self._update(
                run,
                state,
                min(low + fraction * (high - low), high),
                current_speed=round(speed_mbps, 2),
                estimated_time_remaining=max(0.0, (1 - fraction) * duration) + remaining_after,
            )

        return _on_progress

    def _notify(self, event: ProgressEvent) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(event)
        except Exception:
            logger.exception("Progress observer raised; ignoring")
