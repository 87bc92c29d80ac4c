"""Memory controller error counts from the EDAC sysfs interface."""

from __future__ import annotations

import glob
import os
import re
from collections.abc import Iterator

from .config import Settings, read_uint_from_file
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry

EDAC_SUBSYSTEM = "edac"

_MEM_CONTROLLER_RE = re.compile(r".*devices/system/edac/mc/mc([0-9]*)")
_MEM_CSROW_RE = re.compile(r".*devices/system/edac/mc/mc[0-9]*/csrow([0-9]*)")


def _read_count(path: str, what: str) -> int:
    try:
        return read_uint_from_file(path)
    except (OSError, ValueError) as err:
        raise RuntimeError(f"couldn't get {what}: {err}") from err


class EdacCollector(Collector):
    """Exposes correctable and uncorrectable memory error counts."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.ce_count = Desc(
            build_fq_name(NAMESPACE, EDAC_SUBSYSTEM, "correctable_errors_total"),
            "Total correctable memory errors.",
            ("controller",),
        )
        self.ue_count = Desc(
            build_fq_name(NAMESPACE, EDAC_SUBSYSTEM, "uncorrectable_errors_total"),
            "Total uncorrectable memory errors.",
            ("controller",),
        )
        self.csrow_ce_count = Desc(
            build_fq_name(NAMESPACE, EDAC_SUBSYSTEM, "csrow_correctable_errors_total"),
            "Total correctable memory errors for this csrow.",
            ("controller", "csrow"),
        )
        self.csrow_ue_count = Desc(
            build_fq_name(NAMESPACE, EDAC_SUBSYSTEM, "csrow_uncorrectable_errors_total"),
            "Total uncorrectable memory errors for this csrow.",
            ("controller", "csrow"),
        )

    def update(self) -> Iterator[Metric]:
        counter = ValueType.COUNTER
        pattern = self.settings.sys_file_path("devices/system/edac/mc/mc[0-9]*")
        for controller in sorted(glob.glob(pattern)):
            match = _MEM_CONTROLLER_RE.search(controller)
            if match is None:
                raise RuntimeError(f"controller string didn't match regexp: {controller}")
            number = match.group(1)

            def read(name: str) -> int:
                return _read_count(
                    os.path.join(controller, name), f"{name} for controller {number}"
                )

            yield const_metric(self.ce_count, counter, read("ce_count"), number)
            yield const_metric(self.csrow_ce_count, counter, read("ce_noinfo_count"), number, "unknown")
            yield const_metric(self.ue_count, counter, read("ue_count"), number)
            yield const_metric(self.csrow_ue_count, counter, read("ue_noinfo_count"), number, "unknown")

            for csrow in sorted(glob.glob(os.path.join(controller, "csrow[0-9]*"))):
                csrow_match = _MEM_CSROW_RE.search(csrow)
                if csrow_match is None:
                    raise RuntimeError(f"csrow string didn't match regexp: {csrow}")
                csrow_number = csrow_match.group(1)
                where = f"controller/csrow {number}/{csrow_number}"

                value = _read_count(os.path.join(csrow, "ce_count"), f"ce_count for {where}")
                yield const_metric(self.csrow_ce_count, counter, value, number, csrow_number)

                value = _read_count(os.path.join(csrow, "ue_count"), f"ue_count for {where}")
                yield const_metric(self.csrow_ue_count, counter, value, number, csrow_number)


def register(registry: CollectorRegistry) -> None:
    registry.register("edac", True, EdacCollector)