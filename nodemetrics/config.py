"""Filesystem locations and options for the collectors, and small file helpers."""

from __future__ import annotations

import os
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path

_MAX_UINT64 = 2**64 - 1
_DIGITS = re.compile(rb"[0-9]+")


def _join(*parts: str | os.PathLike) -> str:
    """Join path parts the way a clean lexical join does, keeping absolute parts inside the base."""
    joined = "/".join(os.fspath(part) for part in parts if os.fspath(part))
    if not joined:
        return "."
    cleaned = posixpath.normpath(joined)
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


@dataclass(frozen=True)
class Settings:
    """Mount points of the pseudo filesystems and collector options."""

    proc_path: str = "/proc"
    sys_path: str = "/sys"
    rootfs_path: str = "/"
    diskstats_ignored_devices: str = r"^(ram|loop|fd|(h|s|v|xv)d[a-z]|nvme\d+n\d+p)\d+$"
    filesystem_ignored_mount_points: str = "^/(dev|proc|sys|var/lib/docker/.+)($|/)"
    filesystem_ignored_fs_types: str = (
        "^(autofs|binfmt_misc|bpf|cgroup2?|configfs|debugfs|devpts|devtmpfs|fusectl|"
        "hugetlbfs|mqueue|nsfs|overlay|proc|procfs|pstore|rpc_pipefs|securityfs|"
        "selinuxfs|squashfs|sysfs|tracefs)$"
    )

    def proc_file_path(self, *args: str) -> str:
        """Path below the proc filesystem."""
        return _join(self.proc_path, *args)

    def sys_file_path(self, *args: str) -> str:
        """Path below the sys filesystem."""
        return _join(self.sys_path, *args)

    def rootfs_file_path(self, path: str) -> str:
        """Path below the root filesystem; absolute paths stay inside it."""
        return _join(self.rootfs_path, path)


def read_uint_from_file(path: str | os.PathLike) -> int:
    """Read an unsigned 64-bit decimal integer from a file, ignoring surrounding whitespace."""
    data = Path(path).read_bytes().strip()
    text = data.decode("utf-8", errors="replace")
    if not _DIGITS.fullmatch(data):
        raise ValueError(f"parsing {text!r}: invalid syntax")
    value = int(data)
    if value > _MAX_UINT64:
        raise ValueError(f"parsing {text!r}: value out of range")
    return value