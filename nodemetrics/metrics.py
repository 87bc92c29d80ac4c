"""Metric descriptors, constant metrics and descriptors shared between collectors."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ValueType(enum.Enum):
    """Kind of value a metric carries."""

    COUNTER = "counter"
    GAUGE = "gauge"
    UNTYPED = "untyped"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty parts of a metric name with underscores.

    An empty ``name`` yields an empty result.
    """
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


@dataclass(frozen=True)
class Desc:
    """Description of a metric family: name, help text and label names."""

    fq_name: str
    help: str
    variable_labels: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        object.__setattr__(self, "variable_labels", tuple(self.variable_labels))


@dataclass(frozen=True)
class Metric:
    """A single sample of a metric family."""

    desc: Desc
    value_type: ValueType
    value: float
    label_values: tuple[str, ...] = field(default=())

    @property
    def name(self) -> str:
        return self.desc.fq_name

    @property
    def labels(self) -> dict[str, str]:
        """Label names mapped to their values."""
        return dict(zip(self.desc.variable_labels, self.label_values))


def const_metric(desc: Desc, value_type: ValueType, value: float, *args: str) -> Metric:
    """Create a metric for ``desc``; the label values must match its label names."""
    if len(args) != len(desc.variable_labels):
        raise ValueError(
            f"inconsistent label cardinality for {desc.fq_name!r}: "
            f"expected {len(desc.variable_labels)} label values but got {len(args)}"
        )
    return Metric(desc, value_type, float(value), tuple(str(arg) for arg in args))


@dataclass(frozen=True)
class TypedDesc:
    """A descriptor bound to the value type of its metrics."""

    desc: Desc
    value_type: ValueType

    def metric(self, value: float, *args: str) -> Metric:
        return const_metric(self.desc, self.value_type, value, *args)


NAMESPACE = "node"

SCRAPE_DURATION_DESC = Desc(
    build_fq_name(NAMESPACE, "scrape", "collector_duration_seconds"),
    "nodemetrics: Duration of a collector scrape.",
    ("collector",),
)
SCRAPE_SUCCESS_DESC = Desc(
    build_fq_name(NAMESPACE, "scrape", "collector_success"),
    "nodemetrics: Whether a collector succeeded.",
    ("collector",),
)

CPU_SUBSYSTEM = "cpu"

NODE_CPU_SECONDS_DESC = Desc(
    build_fq_name(NAMESPACE, CPU_SUBSYSTEM, "seconds_total"),
    "Seconds the cpus spent in each mode.",
    ("cpu", "mode"),
)

DISK_SUBSYSTEM = "disk"
DISK_LABEL_NAMES = ("device",)

READS_COMPLETED_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "reads_completed_total"),
    "The total number of reads completed successfully.",
    DISK_LABEL_NAMES,
)
READ_BYTES_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "read_bytes_total"),
    "The total number of bytes read successfully.",
    DISK_LABEL_NAMES,
)
WRITES_COMPLETED_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "writes_completed_total"),
    "The total number of writes completed successfully.",
    DISK_LABEL_NAMES,
)
WRITTEN_BYTES_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "written_bytes_total"),
    "The total number of bytes written successfully.",
    DISK_LABEL_NAMES,
)
IO_TIME_SECONDS_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "io_time_seconds_total"),
    "Total seconds spent doing I/Os.",
    DISK_LABEL_NAMES,
)
READ_TIME_SECONDS_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "read_time_seconds_total"),
    "The total number of seconds spent by all reads.",
    DISK_LABEL_NAMES,
)
WRITE_TIME_SECONDS_DESC = Desc(
    build_fq_name(NAMESPACE, DISK_SUBSYSTEM, "write_time_seconds_total"),
    "This is the total number of seconds spent by all writes.",
    DISK_LABEL_NAMES,
)