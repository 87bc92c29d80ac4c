"""Filesystem size and usage for mounted filesystems."""

from __future__ import annotations

import logging
import os
import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .config import Settings
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)

MOUNT_TIMEOUT = 30.0
FILESYSTEM_LABEL_NAMES = ("device", "mountpoint", "fstype")

_stuck_mounts: set[str] = set()
_stuck_mounts_lock = threading.Lock()


@dataclass(frozen=True)
class FilesystemLabels:
    """Identity of a mount."""

    device: str = ""
    mount_point: str = ""
    fs_type: str = ""
    options: str = ""


@dataclass(frozen=True)
class FilesystemStats:
    """Size and usage of one mount."""

    labels: FilesystemLabels
    size: float = 0.0
    free: float = 0.0
    avail: float = 0.0
    files: float = 0.0
    files_free: float = 0.0
    ro: float = 0.0
    device_error: float = 0.0


def parse_filesystem_labels(stream: Iterable[str]) -> list[FilesystemLabels]:
    """Parse lines in the /proc/mounts format."""
    filesystems: list[FilesystemLabels] = []
    for line in stream:
        parts = line.split()
        if len(parts) < 4:
            raise ValueError(f"malformed mount point information: {line.rstrip(chr(10))!r}")
        # Octal escapes for space and tab, as in fstab(5).
        mount_point = parts[1].replace("\\040", " ").replace("\\011", "\t")
        filesystems.append(FilesystemLabels(parts[0], mount_point, parts[2], parts[3]))
    return filesystems


def mount_point_details(settings: Settings) -> list[FilesystemLabels]:
    """Mounts of the init process, falling back to the system mounts."""
    try:
        file = open(settings.proc_file_path("1/mounts"), encoding="utf-8", errors="replace")
    except FileNotFoundError as err:
        # /proc/1/mounts may be hidden by hidepid.
        logger.debug("Got %r reading root mounts, falling back to system mounts", err)
        file = open(settings.proc_file_path("mounts"), encoding="utf-8", errors="replace")
    with file:
        return parse_filesystem_labels(file)


def _stuck_mount_watcher(mount_point: str, success: threading.Event, timeout: float) -> None:
    """Mark the mount as stuck unless success is signalled within the timeout."""
    if success.wait(timeout):
        return
    with _stuck_mounts_lock:
        if success.is_set():
            return
        logger.debug(
            "Mount point %r timed out, it is being labeled as stuck and will not be monitored",
            mount_point,
        )
        _stuck_mounts.add(mount_point)


class FilesystemCollector(Collector):
    """Exposes filesystem size, free space and inode usage."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.ignored_mount_points_pattern = re.compile(settings.filesystem_ignored_mount_points)
        self.ignored_fs_types_pattern = re.compile(settings.filesystem_ignored_fs_types)

        def desc(name: str, help_text: str) -> Desc:
            return Desc(build_fq_name(NAMESPACE, "filesystem", name), help_text, FILESYSTEM_LABEL_NAMES)

        self.size_desc = desc("size_bytes", "Filesystem size in bytes.")
        self.free_desc = desc("free_bytes", "Filesystem free space in bytes.")
        self.avail_desc = desc("avail_bytes", "Filesystem space available to non-root users in bytes.")
        self.files_desc = desc("files", "Filesystem total file nodes.")
        self.files_free_desc = desc("files_free", "Filesystem total free file nodes.")
        self.ro_desc = desc("readonly", "Filesystem read-only status.")
        self.device_error_desc = desc(
            "device_error", "Whether an error occurred while getting statistics for the given device."
        )

    def _stat(self, labels: FilesystemLabels) -> FilesystemStats:
        mount_point = labels.mount_point
        with _stuck_mounts_lock:
            if mount_point in _stuck_mounts:
                logger.debug("Mount point %r is in an unresponsive state", mount_point)
                return FilesystemStats(labels, device_error=1.0)

        success = threading.Event()
        watcher = threading.Thread(
            target=_stuck_mount_watcher, args=(mount_point, success, MOUNT_TIMEOUT), daemon=True
        )
        watcher.start()

        path = self.settings.rootfs_file_path(mount_point)
        error: OSError | None = None
        try:
            buf = os.statvfs(path)
        except OSError as err:
            error = err
        with _stuck_mounts_lock:
            success.set()
            if mount_point in _stuck_mounts:
                logger.debug("Mount point %r has recovered, monitoring will resume", mount_point)
                _stuck_mounts.discard(mount_point)

        if error is not None:
            logger.debug("Error on statfs() system call for %r: %s", path, error)
            return FilesystemStats(labels, device_error=1.0)

        ro = 1.0 if "ro" in labels.options.split(",") else 0.0
        block_size = float(buf.f_bsize)
        return FilesystemStats(
            labels,
            size=float(buf.f_blocks) * block_size,
            free=float(buf.f_bfree) * block_size,
            avail=float(buf.f_bavail) * block_size,
            files=float(buf.f_files),
            files_free=float(buf.f_ffree),
            ro=ro,
        )

    def get_stats(self) -> list[FilesystemStats]:
        stats: list[FilesystemStats] = []
        for labels in mount_point_details(self.settings):
            if self.ignored_mount_points_pattern.search(labels.mount_point):
                logger.debug("Ignoring mount point: %s", labels.mount_point)
                continue
            if self.ignored_fs_types_pattern.search(labels.fs_type):
                logger.debug("Ignoring fs type: %s", labels.fs_type)
                continue
            stats.append(self._stat(labels))
        return stats

    def update(self) -> Iterator[Metric]:
        gauge = ValueType.GAUGE
        seen: set[FilesystemLabels] = set()
        for stat in self.get_stats():
            # Each mount is exposed once, even when mounted several times.
            if stat.labels in seen:
                continue
            seen.add(stat.labels)
            label_values = (stat.labels.device, stat.labels.mount_point, stat.labels.fs_type)

            yield const_metric(self.device_error_desc, gauge, stat.device_error, *label_values)
            if stat.device_error > 0:
                continue
            yield const_metric(self.size_desc, gauge, stat.size, *label_values)
            yield const_metric(self.free_desc, gauge, stat.free, *label_values)
            yield const_metric(self.avail_desc, gauge, stat.avail, *label_values)
            yield const_metric(self.files_desc, gauge, stat.files, *label_values)
            yield const_metric(self.files_free_desc, gauge, stat.files_free, *label_values)
            yield const_metric(self.ro_desc, gauge, stat.ro, *label_values)


def register(registry: CollectorRegistry) -> None:
    registry.register("filesystem", True, FilesystemCollector)