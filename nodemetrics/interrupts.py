"""Interrupt counts per CPU from /proc/interrupts."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from .config import Settings
from .metrics import NAMESPACE, Desc, Metric, TypedDesc, ValueType
from .registry import Collector, CollectorRegistry

INTERRUPT_LABEL_NAMES = ("cpu", "type", "info", "devices")

_INTEGER = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def _is_integer(text: str) -> bool:
    return bool(_INTEGER.fullmatch(text)) and _INT64_MIN <= int(text) <= _INT64_MAX


@dataclass
class Interrupt:
    """One row of the interrupts table."""

    info: str = ""
    devices: str = ""
    values: list[str] = field(default_factory=list)


def parse_interrupts(stream: Iterable[str]) -> dict[str, Interrupt]:
    """Parse the interrupts table; rows with too few columns are skipped."""
    lines = iter(stream)
    header = next(lines, None)
    if header is None:
        raise ValueError("interrupts empty")
    cpu_num = len(header.split())  # one header per cpu

    interrupts: dict[str, Interrupt] = {}
    for line in lines:
        parts = line.split()
        if len(parts) < cpu_num + 2:
            continue  # ERR and MIS rows are ignored
        name = parts[0][:-1]  # drop the trailing colon
        interrupt = Interrupt(values=parts[1 : cpu_num + 1])
        if _is_integer(name):
            interrupt.info = parts[cpu_num + 1]
            interrupt.devices = " ".join(parts[cpu_num + 2 :])
        else:
            interrupt.info = " ".join(parts[cpu_num + 1 :])
        interrupts[name] = interrupt
    return interrupts


def get_interrupts(settings: Settings) -> dict[str, Interrupt]:
    with open(settings.proc_file_path("interrupts"), encoding="utf-8", errors="replace") as file:
        return parse_interrupts(file)


class InterruptsCollector(Collector):
    """Exposes interrupt counts per CPU and interrupt."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.desc = TypedDesc(
            Desc(NAMESPACE + "_interrupts_total", "Interrupt details.", INTERRUPT_LABEL_NAMES),
            ValueType.COUNTER,
        )

    def update(self) -> Iterator[Metric]:
        for name, interrupt in get_interrupts(self.settings).items():
            for cpu_no, raw in enumerate(interrupt.values):
                try:
                    value = float(raw)
                except ValueError as err:
                    raise ValueError(f"invalid value {raw} in interrupts: {err}") from err
                yield self.desc.metric(value, str(cpu_no), name, interrupt.info, interrupt.devices)


def register(registry: CollectorRegistry) -> None:
    registry.register("interrupts", False, InterruptsCollector)