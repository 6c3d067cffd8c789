"""Metric data models"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple


class MetricType(Enum):
    """Prometheus metric types"""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    SUMMARY = "summary"
    UNTYPED = "untyped"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty name parts with underscores"""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def format_value(value: float) -> str:
    """Format a sample value the way the exposition format expects"""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return repr(float(value))


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


@dataclass(frozen=True)
class MetricDescriptor:
    """Static identity of an exported metric"""
    name: str
    help_text: str
    label_names: Tuple[str, ...] = ()
    metric_type: MetricType = MetricType.GAUGE

    def __post_init__(self):
        if not self.name:
            raise ValueError("Metric descriptor requires a name")
        # Accept lists for convenience, store a tuple
        object.__setattr__(self, "label_names", tuple(self.label_names))

    def to_prometheus_header(self) -> str:
        """HELP and TYPE comment lines"""
        return "\n".join([
            f"# HELP {self.name} {escape_help(self.help_text)}",
            f"# TYPE {self.name} {self.metric_type.value}",
        ])


@dataclass(frozen=True)
class Sample:
    """A single observed value for a descriptor"""
    descriptor: MetricDescriptor
    value: float
    label_values: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "label_values", tuple(self.label_values))
        if len(self.label_values) != len(self.descriptor.label_names):
            raise ValueError(
                f"{self.descriptor.name}: expected {len(self.descriptor.label_names)} "
                f"label values, got {len(self.label_values)}"
            )

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def labels(self) -> Dict[str, str]:
        return dict(zip(self.descriptor.label_names, self.label_values))

    def to_prometheus_line(self) -> str:
        """Convert to Prometheus exposition format"""
        labels_str = ""
        if self.labels:
            label_pairs = [f'{k}="{escape_label_value(v)}"' for k, v in self.labels.items()]
            labels_str = "{" + ",".join(label_pairs) + "}"

        return f"{self.name}{labels_str} {format_value(self.value)}"
