"""Build information collector"""
import platform
from typing import Iterator, List
from .base import BaseCollector
from metrics.models import MetricDescriptor, MetricType, Sample, build_fq_name
from version import __version__


class BuildInfoCollector(BaseCollector):
    """Constant gauge carrying the exporter version as labels"""

    def __init__(self, program: str = "speedtest_exporter", version: str = __version__, config=None):
        super().__init__(config, "build_info", "Exporter build information", max_workers=1)
        self.version = version
        self.descriptor = MetricDescriptor(
            name=build_fq_name(program, "", "build_info"),
            help_text=f"A metric with a constant '1' value labeled by version and pythonversion from which {program} was built.",
            label_names=("version", "pythonversion"),
            metric_type=MetricType.GAUGE
        )

    def describe(self) -> List[MetricDescriptor]:
        return [self.descriptor]

    def collect(self) -> Iterator[Sample]:
        yield Sample(self.descriptor, 1.0, (self.version, platform.python_version()))
