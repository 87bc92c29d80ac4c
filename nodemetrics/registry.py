"""Registration of collectors and the node collector that runs them."""

from __future__ import annotations

import abc
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import chain

from .config import Settings
from .metrics import (
    SCRAPE_DURATION_DESC,
    SCRAPE_SUCCESS_DESC,
    Desc,
    Metric,
    ValueType,
    const_metric,
)

logger = logging.getLogger(__name__)


class Collector(abc.ABC):
    """A source of metrics."""

    @abc.abstractmethod
    def update(self) -> Iterable[Metric]:
        """Produce the current metrics; raise on failure."""


Factory = Callable[[Settings], Collector]


@dataclass(frozen=True)
class _Registration:
    factory: Factory
    default_enabled: bool


class CollectorRegistry:
    """Named collector factories and whether each is enabled."""

    def __init__(self) -> None:
        self._registrations: dict[str, _Registration] = {}
        self._enabled: dict[str, bool] = {}

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._registrations))

    def __contains__(self, name: object) -> bool:
        return name in self._registrations

    def register(self, name: str, default_enabled: bool, factory: Factory) -> None:
        if name in self._registrations:
            raise ValueError(f"collector already registered: {name}")
        self._registrations[name] = _Registration(factory, default_enabled)
        self._enabled[name] = default_enabled

    def set_enabled(self, name: str, enabled: bool) -> None:
        if name not in self._registrations:
            raise KeyError(f"unknown collector: {name}")
        self._enabled[name] = enabled

    def is_enabled(self, name: str) -> bool:
        if name not in self._registrations:
            raise KeyError(f"unknown collector: {name}")
        return self._enabled[name]

    def create_node_collector(self, settings: Settings, *args: str) -> NodeCollector:
        """Build every enabled collector; keep only ``args`` when filters are given."""
        filters = set()
        for name in args:
            if name not in self._enabled:
                raise ValueError(f"missing collector: {name}")
            if not self._enabled[name]:
                raise ValueError(f"disabled collector: {name}")
            filters.add(name)

        collectors: dict[str, Collector] = {}
        for name, registration in self._registrations.items():
            if not self._enabled[name]:
                continue
            collector = registration.factory(settings)
            if not filters or name in filters:
                collectors[name] = collector
        return NodeCollector(collectors)


def execute(name: str, collector: Collector) -> list[Metric]:
    """Run one collector, returning its metrics followed by duration and success."""
    begin = time.perf_counter()
    metrics: list[Metric] = []
    error: Exception | None = None
    try:
        for metric in collector.update():
            metrics.append(metric)
    except Exception as err:  # a failing collector must not break the scrape
        error = err
    duration = time.perf_counter() - begin

    if error is not None:
        logger.error("ERROR: %s collector failed after %fs: %s", name, duration, error)
        success = 0.0
    else:
        logger.debug("OK: %s collector succeeded after %fs.", name, duration)
        success = 1.0
    metrics.append(const_metric(SCRAPE_DURATION_DESC, ValueType.GAUGE, duration, name))
    metrics.append(const_metric(SCRAPE_SUCCESS_DESC, ValueType.GAUGE, success, name))
    return metrics


@dataclass
class NodeCollector:
    """Runs a set of named collectors concurrently."""

    collectors: dict[str, Collector] = field(default_factory=dict)

    def describe(self) -> list[Desc]:
        return [SCRAPE_DURATION_DESC, SCRAPE_SUCCESS_DESC]

    def collect(self) -> list[Metric]:
        items = sorted(self.collectors.items())
        if not items:
            return []
        with ThreadPoolExecutor(max_workers=len(items)) as pool:
            results = pool.map(lambda item: execute(*item), items)
            return list(chain.from_iterable(results))