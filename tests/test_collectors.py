"""Tests for collector modules"""
import platform
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from config import Config
from collectors.base import BaseCollector
from collectors.build_info import BuildInfoCollector
from collectors.speedtest import (
    SpeedtestCollector,
    MeasurementReading,
    PING,
    DOWNLOAD,
    UPLOAD,
    UNKNOWN_ADDRESS
)
from errors import MeasurementError, ProtocolError
from metrics.models import MetricType
from fakes import FakeSpeedtestClient, FakeResolver


class TestMeasurementReading:
    """Test validation of provider readings"""

    def test_from_mapping(self):
        """Test a complete reading is converted to floats"""
        reading = MeasurementReading.from_mapping({"ping": 12, "download": "85.2", "upload": 9.7})

        assert reading == MeasurementReading(ping=12.0, download=85.2, upload=9.7)

    def test_extra_keys_are_ignored(self):
        """Test keys beyond ping, download and upload are ignored"""
        reading = MeasurementReading.from_mapping({"ping": 1, "download": 2, "upload": 3, "jitter": 4})

        assert reading.upload == 3.0

    @pytest.mark.parametrize("metrics", [
        {"download": 85.2, "upload": 9.7},
        {"ping": 12.5, "download": None, "upload": 9.7},
        {"ping": 12.5, "download": "fast", "upload": 9.7},
        {"ping": float("nan"), "download": 85.2, "upload": 9.7},
        {"ping": 12.5, "download": 85.2, "upload": float("inf")},
    ])
    def test_malformed_reading_rejected(self, metrics):
        """Test missing, non-numeric and non-finite values are rejected"""
        with pytest.raises(ProtocolError):
            MeasurementReading.from_mapping(metrics)

    def test_non_mapping_rejected(self):
        """Test a provider result that is not a mapping is rejected"""
        with pytest.raises(ProtocolError):
            MeasurementReading.from_mapping([12.5, 85.2, 9.7])

    def test_protocol_error_is_measurement_error(self):
        """Test malformed readings share the measurement failure path"""
        assert issubclass(ProtocolError, MeasurementError)


class TestSpeedtestCollector:
    """Test the speedtest collector"""

    def setup_method(self):
        """Setup test fixtures"""
        self.client = FakeSpeedtestClient()
        self.resolver = FakeResolver()
        self.collector = SpeedtestCollector(self.client, self.resolver)

    def teardown_method(self):
        self.collector.cleanup()

    def test_collector_initialization(self):
        """Test collector initialization"""
        assert self.collector.name == "speedtest"
        assert "bandwidth" in self.collector.help_text.lower()
        assert isinstance(self.collector, BaseCollector)

    def test_describe(self):
        """Test describe yields the three speedtest descriptors"""
        descriptors = self.collector.describe()

        assert [d.name for d in descriptors] == ["speedtest_ping", "speedtest_download", "speedtest_upload"]
        assert all(d.label_names == ("ip",) for d in descriptors)
        assert all(d.metric_type == MetricType.GAUGE for d in descriptors)

    def test_describe_is_idempotent(self):
        """Test describe returns the same descriptors on every call"""
        first = self.collector.describe()

        for _ in range(5):
            assert self.collector.describe() == first

        assert self.client.calls == 0
        assert self.resolver.calls == 0

    def test_collect(self):
        """Test a successful cycle yields one sample per descriptor"""
        samples = self.collector.collect_samples()

        assert [(s.descriptor, s.label_values, s.value) for s in samples] == [
            (PING, ("198.51.100.4",), 12.5),
            (DOWNLOAD, ("198.51.100.4",), 85.2),
            (UPLOAD, ("198.51.100.4",), 9.7),
        ]
        assert self.client.calls == 1
        assert self.collector.get_status()["last_success"] is True

    def test_collect_measures_on_every_cycle(self):
        """Test readings are not cached across cycles"""
        self.collector.collect_samples()
        self.client.metrics = {"ping": 20.0, "download": 50.0, "upload": 5.0}
        samples = self.collector.collect_samples()

        assert [s.value for s in samples] == [20.0, 50.0, 5.0]
        assert self.client.calls == 2

    def test_address_failure_uses_unknown_label(self):
        """Test address lookup failure keeps all samples with the sentinel label"""
        self.resolver.fail = True

        samples = self.collector.collect_samples()

        assert len(samples) == 3
        assert all(s.labels == {"ip": UNKNOWN_ADDRESS} for s in samples)
        assert self.collector.address_failures == 1
        assert self.collector.measurement_failures == 0

    def test_missing_resolver_uses_unknown_label(self):
        """Test a collector without resolver labels samples as unknown"""
        collector = SpeedtestCollector(self.client, None)

        samples = collector.collect_samples()

        assert [s.label_values for s in samples] == [("unknown",)] * 3
        collector.cleanup()

    def test_client_not_configured(self):
        """Test a missing client yields no samples and logs an error"""
        collector = SpeedtestCollector(None, self.resolver)

        with patch('collectors.speedtest.logger') as mock_logger:
            samples = collector.collect_samples()

        assert samples == []
        assert self.resolver.calls == 0
        mock_logger.error.assert_called_once()
        assert collector.get_status()["client_configured"] is False
        collector.cleanup()

    def test_measurement_failure_yields_nothing(self):
        """Test a failed measurement yields no samples and is counted"""
        self.client.error = MeasurementError("Unable to connect to servers to test latency.")

        with patch('collectors.speedtest.logger') as mock_logger:
            samples = self.collector.collect_samples()

        assert samples == []
        assert self.collector.measurement_failures == 1
        assert self.collector.get_status()["last_success"] is False
        mock_logger.error.assert_called_once()

    def test_malformed_reading_yields_nothing(self):
        """Test a partial reading never produces zero-valued samples"""
        self.client.metrics = {"ping": 12.5}

        samples = self.collector.collect_samples()

        assert samples == []
        assert self.collector.measurement_failures == 1

    def test_cycle_counted_when_collect_is_called(self):
        """Test the cycle is counted at once but measures only when consumed"""
        samples = self.collector.collect()

        assert self.collector.collections == 1
        assert self.client.calls == 0

        assert len(list(samples)) == 3
        assert self.client.calls == 1

    def test_abandoned_cycle_is_skipped(self):
        """Test a cycle given up before it started never measures"""
        cycle = self.collector._begin_cycle()
        self.collector._abandon(cycle)

        assert list(self.collector._run_cycle(cycle)) == []
        assert self.client.calls == 0
        status = self.collector.get_status()
        assert status["measurement_failures"] == 1
        assert status["last_success"] is False
        assert self.collector._active == {}

    def test_unexpected_error_propagates(self):
        """Test errors outside the measurement contract reach the registry as failures"""
        self.client.error = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            self.collector.collect_samples()

        assert self.collector.get_status()["last_success"] is False
        assert self.collector._active == {}

    def test_status(self):
        """Test collector status counters"""
        self.collector.collect_samples()
        self.resolver.fail = True
        self.collector.collect_samples()

        status = self.collector.get_status()
        assert status["collections"] == 2
        assert status["address_failures"] == 1
        assert status["measurement_failures"] == 0
        assert status["last_duration_seconds"] is not None

    def test_concurrent_cycles_keep_address_and_reading_together(self):
        """Test concurrent cycles never cross-label samples"""
        cycle = threading.local()

        class CycleResolver:
            def resolve(self):
                time.sleep(0.001)
                return f"192.0.2.{cycle.n}"

        class CycleClient:
            def network_metrics(self):
                time.sleep(0.002)
                return {"ping": float(cycle.n), "download": cycle.n * 10.0, "upload": cycle.n * 100.0}

        collector = SpeedtestCollector(CycleClient(), CycleResolver())

        def run(n):
            cycle.n = n
            return n, collector.collect_samples()

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, range(1, 33)))

        for n, samples in results:
            assert [s.value for s in samples] == [float(n), n * 10.0, n * 100.0]
            assert all(s.label_values == (f"192.0.2.{n}",) for s in samples)
        assert collector.collections == 32
        collector.cleanup()

    def test_collector_enabled_check(self):
        """Test collector enabled check against configuration"""
        assert SpeedtestCollector(self.client, self.resolver, Config()).is_enabled() is True

        config = Config(enabled_collectors_str="build_info")
        assert SpeedtestCollector(self.client, self.resolver, config).is_enabled() is False

    @pytest.mark.asyncio
    async def test_collect_async(self):
        """Test the async wrapper runs a full cycle"""
        samples = await self.collector.collect_async()

        assert len(samples) == 3
        assert samples[0].name == "speedtest_ping"


class TestBuildInfoCollector:
    """Test the build information collector"""

    def test_build_info(self):
        """Test build info exports a constant 1 labelled with versions"""
        collector = BuildInfoCollector(version="9.9.9")

        samples = collector.collect_samples()

        assert len(samples) == 1
        assert samples[0].name == "speedtest_exporter_build_info"
        assert samples[0].value == 1.0
        assert samples[0].labels == {"version": "9.9.9", "pythonversion": platform.python_version()}
        assert collector.describe() == [samples[0].descriptor]
        collector.cleanup()
