"""Configured and active slaves of Linux bonding interfaces."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from .config import Settings
from .metrics import NAMESPACE, Desc, Metric, TypedDesc, ValueType, build_fq_name
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)


def _read_mii_status(master_dir: Path, slave: str) -> str:
    try:
        return (master_dir / f"lower_{slave}" / "bonding_slave" / "mii_status").read_text()
    except FileNotFoundError:
        # Some older kernels use the slave_ prefix.
        return (master_dir / f"slave_{slave}" / "bonding_slave" / "mii_status").read_text()


def read_bonding_stats(root: str | os.PathLike) -> dict[str, tuple[int, int]]:
    """Map each bonding master to its (configured, active) slave counts."""
    root_path = Path(root)
    masters = (root_path / "bonding_masters").read_text().split()
    status: dict[str, tuple[int, int]] = {}
    for master in masters:
        master_dir = root_path / master
        slaves = (master_dir / "bonding" / "slaves").read_text().split()
        configured = 0
        active = 0
        for slave in slaves:
            state = _read_mii_status(master_dir, slave)
            configured += 1
            if state.strip() == "up":
                active += 1
        status[master] = (configured, active)
    return status


class BondingCollector(Collector):
    """Exposes the number of configured and active slaves per bonding interface."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.slaves = TypedDesc(
            Desc(
                build_fq_name(NAMESPACE, "bonding", "slaves"),
                "Number of configured slaves per bonding interface.",
                ("master",),
            ),
            ValueType.GAUGE,
        )
        self.active = TypedDesc(
            Desc(
                build_fq_name(NAMESPACE, "bonding", "active"),
                "Number of active slaves per bonding interface.",
                ("master",),
            ),
            ValueType.GAUGE,
        )

    def update(self) -> Iterator[Metric]:
        status_file = self.settings.sys_file_path("class/net")
        try:
            stats = read_bonding_stats(status_file)
        except FileNotFoundError:
            logger.debug("Not collecting bonding, file does not exist: %s", status_file)
            return
        for master, (configured, active) in stats.items():
            yield self.slaves.metric(configured, master)
            yield self.active.metric(active, master)


def register(registry: CollectorRegistry) -> None:
    registry.register("bonding", True, BondingCollector)