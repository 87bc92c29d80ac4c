"""Disk device I/O statistics from /proc/diskstats."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .config import Settings
from .metrics import (
    DISK_LABEL_NAMES,
    DISK_SUBSYSTEM,
    IO_TIME_SECONDS_DESC,
    NAMESPACE,
    READ_BYTES_DESC,
    READ_TIME_SECONDS_DESC,
    READS_COMPLETED_DESC,
    WRITE_TIME_SECONDS_DESC,
    WRITES_COMPLETED_DESC,
    WRITTEN_BYTES_DESC,
    Desc,
    Metric,
    ValueType,
    build_fq_name,
    const_metric,
)
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)

DISK_SECTOR_SIZE = 512
DISKSTATS_FILENAME = "diskstats"


@dataclass(frozen=True)
class TypedFactorDesc:
    """A typed descriptor whose values are scaled by a factor, unless it is zero."""

    desc: Desc
    value_type: ValueType
    factor: float = 0.0

    def metric(self, value: float, *args: str) -> Metric:
        if self.factor != 0:
            value *= self.factor
        return const_metric(self.desc, self.value_type, value, *args)


def _disk_desc(name: str, help_text: str) -> Desc:
    return Desc(build_fq_name(NAMESPACE, DISK_SUBSYSTEM, name), help_text, DISK_LABEL_NAMES)


def _descriptors() -> list[TypedFactorDesc]:
    counter = ValueType.COUNTER
    return [
        TypedFactorDesc(READS_COMPLETED_DESC, counter),
        TypedFactorDesc(_disk_desc("reads_merged_total", "The total number of reads merged."), counter),
        TypedFactorDesc(READ_BYTES_DESC, counter, DISK_SECTOR_SIZE),
        TypedFactorDesc(READ_TIME_SECONDS_DESC, counter, 0.001),
        TypedFactorDesc(WRITES_COMPLETED_DESC, counter),
        TypedFactorDesc(_disk_desc("writes_merged_total", "The number of writes merged."), counter),
        TypedFactorDesc(WRITTEN_BYTES_DESC, counter, DISK_SECTOR_SIZE),
        TypedFactorDesc(WRITE_TIME_SECONDS_DESC, counter, 0.001),
        TypedFactorDesc(
            _disk_desc("io_now", "The number of I/Os currently in progress."), ValueType.GAUGE
        ),
        TypedFactorDesc(IO_TIME_SECONDS_DESC, counter, 0.001),
        TypedFactorDesc(
            _disk_desc("io_time_weighted_seconds_total", "The weighted # of seconds spent doing I/Os."),
            counter,
            0.001,
        ),
        TypedFactorDesc(
            _disk_desc("discards_completed_total", "The total number of discards completed successfully."),
            counter,
        ),
        TypedFactorDesc(
            _disk_desc("discards_merged_total", "The total number of discards merged."), counter
        ),
        TypedFactorDesc(
            _disk_desc("discarded_sectors_total", "The total number of sectors discarded successfully."),
            counter,
        ),
        TypedFactorDesc(
            _disk_desc(
                "discard_time_seconds_total",
                "This is the total number of seconds spent by all discards.",
            ),
            counter,
            0.001,
        ),
    ]


def parse_disk_stats(stream: Iterable[str]) -> dict[str, list[str]]:
    """Map each device to its raw statistic fields, major, minor and name stripped."""
    disk_stats: dict[str, list[str]] = {}
    for line in stream:
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"invalid line in {DISKSTATS_FILENAME}: {line.rstrip(chr(10))}")
        disk_stats[parts[2]] = parts[3:]
    return disk_stats


def get_disk_stats(settings: Settings) -> dict[str, list[str]]:
    with open(settings.proc_file_path(DISKSTATS_FILENAME), encoding="utf-8", errors="replace") as file:
        return parse_disk_stats(file)


class DiskstatsCollector(Collector):
    """Exposes disk device statistics."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.ignored_devices_pattern = re.compile(settings.diskstats_ignored_devices)
        self.descs = _descriptors()

    def update(self) -> Iterator[Metric]:
        for device, stats in get_disk_stats(self.settings).items():
            if self.ignored_devices_pattern.search(device):
                logger.debug("Ignoring device: %s", device)
                continue
            # Statistics beyond the known ones are ignored.
            for desc, raw in zip(self.descs, stats):
                try:
                    value = float(raw)
                except ValueError as err:
                    raise ValueError(f"invalid value {raw} in diskstats: {err}") from err
                yield desc.metric(value, device)


def register(registry: CollectorRegistry) -> None:
    registry.register("diskstats", True, DiskstatsCollector)