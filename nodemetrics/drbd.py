"""DRBD device statistics from /proc/drbd."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from .config import Settings
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)

_UINT = re.compile(r"[0-9]+")
_MAX_UINT64 = 2**64 - 1


@dataclass(frozen=True)
class _NumericalMetric:
    desc: Desc
    value_type: ValueType
    multiplier: float


@dataclass(frozen=True)
class _StringPairMetric:
    desc: Desc
    value_okay: str

    def is_okay(self, value: str) -> float:
        return 1.0 if value == self.value_okay else 0.0


def _numerical(name: str, help_text: str, value_type: ValueType, multiplier: float) -> _NumericalMetric:
    return _NumericalMetric(
        Desc(build_fq_name(NAMESPACE, "drbd", name), help_text, ("device",)),
        value_type,
        multiplier,
    )


def _string_pair(name: str, help_text: str, value_okay: str) -> _StringPairMetric:
    return _StringPairMetric(
        Desc(build_fq_name(NAMESPACE, "drbd", name), help_text, ("device", "node")),
        value_okay,
    )


_COUNTER = ValueType.COUNTER
_GAUGE = ValueType.GAUGE

NUMERICAL_METRICS: dict[str, _NumericalMetric] = {
    "ns": _numerical("network_sent_bytes_total", "Total number of bytes sent via the network.", _COUNTER, 1024),
    "nr": _numerical("network_received_bytes_total", "Total number of bytes received via the network.", _COUNTER, 1),
    "dw": _numerical("disk_written_bytes_total", "Net data written on local hard disk; in bytes.", _COUNTER, 1024),
    "dr": _numerical("disk_read_bytes_total", "Net data read from local hard disk; in bytes.", _COUNTER, 1024),
    "al": _numerical(
        "activitylog_writes_total",
        "Number of updates of the activity log area of the meta data.",
        _COUNTER,
        1,
    ),
    "bm": _numerical(
        "bitmap_writes_total", "Number of updates of the bitmap area of the meta data.", _COUNTER, 1
    ),
    "lo": _numerical("local_pending", "Number of open requests to the local I/O sub-system.", _GAUGE, 1),
    "pe": _numerical(
        "remote_pending",
        "Number of requests sent to the peer, but that have not yet been answered by the latter.",
        _GAUGE,
        1,
    ),
    "ua": _numerical(
        "remote_unacknowledged",
        "Number of requests received by the peer via the network connection, "
        "but that have not yet been answered.",
        _GAUGE,
        1,
    ),
    "ap": _numerical(
        "application_pending",
        "Number of block I/O requests forwarded to DRBD, but not yet answered by DRBD.",
        _GAUGE,
        1,
    ),
    "ep": _numerical("epochs", "Number of Epochs currently on the fly.", _GAUGE, 1),
    "oos": _numerical(
        "out_of_sync_bytes", "Amount of data known to be out of sync; in bytes.", _GAUGE, 1024
    ),
}

STRING_PAIR_METRICS: dict[str, _StringPairMetric] = {
    "ro": _string_pair(
        "node_role_is_primary", "Whether the role of the node is in the primary state.", "Primary"
    ),
    "ds": _string_pair(
        "disk_state_is_up_to_date", "Whether the disk of the node is up to date.", "UpToDate"
    ),
}

DRBD_CONNECTED = Desc(
    build_fq_name(NAMESPACE, "drbd", "connected"),
    "Whether DRBD is connected to the peer.",
    ("device",),
)


def _device_id(text: str) -> int | None:
    if _UINT.fullmatch(text):
        value = int(text)
        if value <= _MAX_UINT64:
            return value
    return None


def _parse_float(text: str) -> float:
    if "_" in text or text != text.strip():
        raise ValueError(f"strconv.ParseFloat: parsing {text!r}: invalid syntax")
    try:
        return float(text)
    except ValueError as err:
        raise ValueError(f"strconv.ParseFloat: parsing {text!r}: invalid syntax") from err


def parse_drbd(text: str) -> list[Metric]:
    """Turn the contents of /proc/drbd into metrics."""
    metrics: list[Metric] = []
    device = "unknown"
    for word in text.split():
        kv = word.split(":")
        if len(kv) != 2:
            logger.debug("Don't know how to process string %r", word)
            continue
        key, value = kv
        device_id = _device_id(key)
        if device_id is not None and value == "":
            device = f"drbd{device_id}"
        elif key in NUMERICAL_METRICS:
            metric = NUMERICAL_METRICS[key]
            number = _parse_float(value)
            metrics.append(
                const_metric(metric.desc, metric.value_type, number * metric.multiplier, device)
            )
        elif key in STRING_PAIR_METRICS:
            pair = STRING_PAIR_METRICS[key]
            values = value.split("/")
            if len(values) < 2:
                raise ValueError(f"malformed string pair {word!r}: expected local/remote")
            metrics.append(const_metric(pair.desc, _GAUGE, pair.is_okay(values[0]), device, "local"))
            metrics.append(const_metric(pair.desc, _GAUGE, pair.is_okay(values[1]), device, "remote"))
        elif key == "cs":
            connected = 1.0 if value == "Connected" else 0.0
            metrics.append(const_metric(DRBD_CONNECTED, _GAUGE, connected, device))
        else:
            logger.debug("Don't know how to process key-value pair [%s: %r]", key, value)
    return metrics


class DRBDCollector(Collector):
    """Exposes DRBD statistics."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def update(self) -> Iterator[Metric]:
        stats_file = self.settings.proc_file_path("drbd")
        try:
            with open(stats_file, encoding="utf-8", errors="replace") as file:
                text = file.read()
        except FileNotFoundError as err:
            logger.debug(
                "Not collecting DRBD statistics, as %s does not exist: %s", stats_file, err
            )
            return
        yield from parse_drbd(text)


def register(registry: CollectorRegistry) -> None:
    registry.register("drbd", False, DRBDCollector)