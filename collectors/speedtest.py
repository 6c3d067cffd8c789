"""Speedtest metrics collector"""
import asyncio
import math
import threading
import time
from dataclasses import dataclass
from typing import Dict, Iterator, List, Mapping, Optional, Tuple
from .base import BaseCollector
from errors import AddressResolutionError, MeasurementError, ProtocolError
from metrics.models import MetricDescriptor, MetricType, Sample, build_fq_name
from logging_config import get_logger

logger = get_logger(__name__)

NAMESPACE = "speedtest"
UNKNOWN_ADDRESS = "unknown"

PING = MetricDescriptor(
    name=build_fq_name(NAMESPACE, "", "ping"),
    help_text="Latency (ms)",
    label_names=("ip",),
    metric_type=MetricType.GAUGE
)
DOWNLOAD = MetricDescriptor(
    name=build_fq_name(NAMESPACE, "", "download"),
    help_text="Download bandwidth (Mbps).",
    label_names=("ip",),
    metric_type=MetricType.GAUGE
)
UPLOAD = MetricDescriptor(
    name=build_fq_name(NAMESPACE, "", "upload"),
    help_text="Upload bandwidth (Mbps).",
    label_names=("ip",),
    metric_type=MetricType.GAUGE
)


@dataclass(frozen=True)
class MeasurementReading:
    """Result of one speed measurement"""
    ping: float
    download: float
    upload: float

    @classmethod
    def from_mapping(cls, metrics: Mapping[str, float]) -> "MeasurementReading":
        """Validate a provider result; missing or non-finite values are rejected"""
        if not isinstance(metrics, Mapping):
            raise ProtocolError(f"Expected a mapping of readings, got {type(metrics).__name__}")

        values = {}
        for key in ("ping", "download", "upload"):
            if key not in metrics:
                raise ProtocolError(f"Reading is missing '{key}'")
            try:
                value = float(metrics[key])
            except (TypeError, ValueError) as e:
                raise ProtocolError(f"Reading '{key}' is not numeric: {metrics[key]!r}") from e
            if not math.isfinite(value):
                raise ProtocolError(f"Reading '{key}' is not finite: {value}")
            values[key] = value
        return cls(**values)


class SpeedtestCollector(BaseCollector):
    """Run a speed measurement on every scrape and export it as gauges"""

    DESCRIPTORS = (PING, DOWNLOAD, UPLOAD)

    def __init__(self, client, resolver, config=None):
        super().__init__(config, "speedtest", "Network latency and bandwidth measured on each scrape")
        self.client = client
        self.resolver = resolver

        self._stats_lock = threading.Lock()
        self._cycle_seq = 0
        # Unfinished cycles, mapped to whether their caller gave up on them
        self._active: Dict[int, bool] = {}
        self.collections = 0
        self.measurement_failures = 0
        self.address_failures = 0
        self.last_success: Optional[bool] = None
        self.last_duration: Optional[float] = None

    def describe(self) -> List[MetricDescriptor]:
        return list(self.DESCRIPTORS)

    def collect(self) -> Iterator[Sample]:
        """Start a cycle and return an iterator over its samples.

        The cycle is counted as soon as collect() is called. The address
        lookup and the measurement run when the iterator is first consumed.
        Yields nothing when the client is missing or the measurement fails.
        A failed address lookup only replaces the ip label with "unknown".
        """
        return self._run_cycle(self._begin_cycle())

    async def collect_async(self) -> List[Sample]:
        """Run one cycle in the executor; a cancelled wait abandons that cycle"""
        loop = asyncio.get_event_loop()
        cycle = self._begin_cycle()
        try:
            work = loop.run_in_executor(self._executor, lambda: list(self._run_cycle(cycle)))
            # Shielded so a queued cycle still runs and clears its entry
            return await asyncio.shield(work)
        except asyncio.CancelledError:
            self._abandon(cycle)
            raise

    def _run_cycle(self, cycle: int) -> Iterator[Sample]:
        if self._is_abandoned(cycle):
            self._finish(cycle, False, time.time())
            logger.debug("Skipping abandoned speedtest cycle", cycle=cycle)
            return

        logger.info("Speedtest exporter starting", cycle=cycle, event_type="collection_start")
        start_time = time.time()
        try:
            ip, reading = self._measure()
        except Exception:
            self._finish(cycle, False, start_time)
            raise

        duration = self._finish(cycle, reading is not None, start_time)
        if reading is None:
            return
        if duration is None:
            logger.warning(
                "Discarding speedtest result after scrape timeout",
                cycle=cycle,
                ip=ip,
                event_type="collection_discarded"
            )
            return

        logger.info(
            "Speedtest exporter finished",
            cycle=cycle,
            ip=ip,
            ping=reading.ping,
            download=reading.download,
            upload=reading.upload,
            duration_seconds=round(duration, 3),
            event_type="collection_complete"
        )
        yield Sample(PING, reading.ping, (ip,))
        yield Sample(DOWNLOAD, reading.download, (ip,))
        yield Sample(UPLOAD, reading.upload, (ip,))

    def _measure(self) -> Tuple[str, Optional[MeasurementReading]]:
        """Address label and reading; the reading is None when the measurement failed"""
        if self.client is None:
            logger.error("Speedtest client not configured", event_type="collection_error")
            return UNKNOWN_ADDRESS, None

        ip = self._resolve_address()
        try:
            return ip, MeasurementReading.from_mapping(self.client.network_metrics())
        except MeasurementError as e:
            logger.error(
                "Speedtest measurement failed",
                error=str(e),
                error_type=type(e).__name__,
                ip=ip,
                event_type="measurement_error"
            )
            return ip, None

    def _resolve_address(self) -> str:
        if self.resolver is None:
            return UNKNOWN_ADDRESS
        try:
            return self.resolver.resolve()
        except AddressResolutionError as e:
            logger.warning("Error getting IP address", error=str(e), event_type="address_error")
            with self._stats_lock:
                self.address_failures += 1
            return UNKNOWN_ADDRESS

    def _begin_cycle(self) -> int:
        with self._stats_lock:
            self._cycle_seq += 1
            self.collections += 1
            self._active[self._cycle_seq] = False
            return self._cycle_seq

    def _is_abandoned(self, cycle: int) -> bool:
        with self._stats_lock:
            return self._active.get(cycle, False)

    def _abandon(self, cycle: int):
        """Count a cycle whose caller stopped waiting as failed"""
        with self._stats_lock:
            if cycle in self._active:
                self._active[cycle] = True
            self.measurement_failures += 1
            self.last_success = False

    def _finish(self, cycle: int, success: bool, start_time: float) -> Optional[float]:
        """Record the outcome; returns None for abandoned cycles, which record nothing"""
        with self._stats_lock:
            if self._active.pop(cycle, False):
                return None
            if not success:
                self.measurement_failures += 1
            self.last_success = success
            self.last_duration = time.time() - start_time
            return self.last_duration

    def get_status(self) -> dict:
        with self._stats_lock:
            return {
                "collections": self.collections,
                "measurement_failures": self.measurement_failures,
                "address_failures": self.address_failures,
                "last_success": self.last_success,
                "last_duration_seconds": round(self.last_duration, 3) if self.last_duration is not None else None,
                "client_configured": self.client is not None,
            }
