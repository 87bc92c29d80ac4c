"""Connection tracking table usage."""

from __future__ import annotations

from collections.abc import Iterator

from .config import Settings, read_uint_from_file
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry


class ConntrackCollector(Collector):
    """Exposes the current and maximum number of conntrack entries."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.current = Desc(
            build_fq_name(NAMESPACE, "", "nf_conntrack_entries"),
            "Number of currently allocated flow entries for connection tracking.",
        )
        self.limit = Desc(
            build_fq_name(NAMESPACE, "", "nf_conntrack_entries_limit"),
            "Maximum size of connection tracking table.",
        )

    def update(self) -> Iterator[Metric]:
        try:
            count = read_uint_from_file(
                self.settings.proc_file_path("sys/net/netfilter/nf_conntrack_count")
            )
        except (OSError, ValueError):
            # Conntrack is probably not loaded into the kernel.
            return
        yield const_metric(self.current, ValueType.GAUGE, count)

        try:
            maximum = read_uint_from_file(
                self.settings.proc_file_path("sys/net/netfilter/nf_conntrack_max")
            )
        except (OSError, ValueError):
            return
        yield const_metric(self.limit, ValueType.GAUGE, maximum)


def register(registry: CollectorRegistry) -> None:
    registry.register("conntrack", True, ConntrackCollector)