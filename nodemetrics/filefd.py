"""Allocated and maximum file descriptors from /proc/sys/fs/file-nr."""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

from .config import Settings
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry

FILE_FD_SUBSYSTEM = "filefd"


def parse_file_fd_stats(filename: str | os.PathLike) -> dict[str, str]:
    """Read the allocated and maximum values from a file-nr file."""
    parts = Path(filename).read_bytes().strip().split(b"\t")
    if len(parts) < 3:
        raise ValueError(f"unexpected number of file stats in {os.fspath(filename)!r}")
    # The middle value is always zero on modern kernels and is skipped.
    return {
        "allocated": parts[0].decode("utf-8", errors="replace"),
        "maximum": parts[2].decode("utf-8", errors="replace"),
    }


class FileFDStatCollector(Collector):
    """Exposes file descriptor statistics."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def update(self) -> Iterator[Metric]:
        stats = parse_file_fd_stats(self.settings.proc_file_path("sys/fs/file-nr"))
        for name, raw in stats.items():
            try:
                value = float(raw)
            except ValueError as err:
                raise ValueError(f"invalid value {raw} in file-nr: {err}") from err
            desc = Desc(
                build_fq_name(NAMESPACE, FILE_FD_SUBSYSTEM, name),
                f"File descriptor statistics: {name}.",
            )
            yield const_metric(desc, ValueType.GAUGE, value)


def register(registry: CollectorRegistry) -> None:
    registry.register(FILE_FD_SUBSYSTEM, True, FileFDStatCollector)