"""Prometheus text exposition format exporter"""
from typing import Dict, Iterable, List
from ..models import MetricDescriptor, Sample

CONTENT_TYPE_LATEST = "text/plain; version=0.0.4; charset=utf-8"


class PrometheusExporter:
    """Render samples in the Prometheus text exposition format"""

    content_type = CONTENT_TYPE_LATEST

    def export_metrics(self, metrics: Iterable[Sample]) -> str:
        """Convert samples to exposition text, one HELP/TYPE block per metric name"""
        # Group samples by descriptor to avoid duplicate HELP/TYPE comments
        descriptors: Dict[str, MetricDescriptor] = {}
        samples_by_name: Dict[str, List[Sample]] = {}
        for sample in metrics:
            if sample.name not in descriptors:
                descriptors[sample.name] = sample.descriptor
                samples_by_name[sample.name] = []
            samples_by_name[sample.name].append(sample)

        lines = []
        for name, samples in samples_by_name.items():
            lines.append(descriptors[name].to_prometheus_header())
            for sample in samples:
                lines.append(sample.to_prometheus_line())

        if not lines:
            return ""
        return "\n".join(lines) + "\n"
