"""Available kernel entropy."""

from __future__ import annotations

from collections.abc import Iterator

from .config import Settings, read_uint_from_file
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry


class EntropyCollector(Collector):
    """Exposes the bits of entropy available to the kernel."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.entropy_avail = Desc(
            build_fq_name(NAMESPACE, "", "entropy_available_bits"),
            "Bits of available entropy.",
        )

    def update(self) -> Iterator[Metric]:
        value = read_uint_from_file(
            self.settings.proc_file_path("sys/kernel/random/entropy_avail")
        )
        yield const_metric(self.entropy_avail, ValueType.GAUGE, value)


def register(registry: CollectorRegistry) -> None:
    registry.register("entropy", True, EntropyCollector)