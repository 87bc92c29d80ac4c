"""InfiniBand port counters from /sys/class/infiniband."""

from __future__ import annotations

import glob
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass

from .config import Settings, read_uint_from_file
from .metrics import NAMESPACE, Desc, Metric, ValueType, build_fq_name, const_metric
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)

INFINIBAND_PATH = "class/infiniband"
INFINIBAND_SUBSYSTEM = "infiniband"

# Counters that report data per lane; the cards have four lanes per port.
_PER_LANE_FILES = frozenset({"port_rcv_data", "port_xmit_data", "port_rcv_data_64", "port_xmit_data_64"})


class NoInfinibandDevicesError(LookupError):
    """No InfiniBand devices were detected."""

    def __init__(self, message: str = "no InfiniBand devices detected") -> None:
        super().__init__(message)


class NoInfinibandPortsError(LookupError):
    """No ports were detected for an InfiniBand device."""

    def __init__(self, message: str = "no InfiniBand ports detected") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class _CounterFile:
    file: str
    help: str


COUNTERS: dict[str, _CounterFile] = {
    "link_downed_total": _CounterFile(
        "link_downed", "Number of times the link failed to recover from an error state and went down"
    ),
    "link_error_recovery_total": _CounterFile(
        "link_error_recovery", "Number of times the link successfully recovered from an error state"
    ),
    "multicast_packets_received_total": _CounterFile(
        "multicast_rcv_packets", "Number of multicast packets received (including errors)"
    ),
    "multicast_packets_transmitted_total": _CounterFile(
        "multicast_xmit_packets", "Number of multicast packets transmitted (including errors)"
    ),
    "port_constraint_errors_received_total": _CounterFile(
        "port_rcv_constraint_errors",
        "Number of packets received on the switch physical port that are discarded",
    ),
    "port_constraint_errors_transmitted_total": _CounterFile(
        "port_xmit_constraint_errors", "Number of packets not transmitted from the switch physical port"
    ),
    "port_data_received_bytes_total": _CounterFile(
        "port_rcv_data", "Number of data octets received on all links"
    ),
    "port_data_transmitted_bytes_total": _CounterFile(
        "port_xmit_data", "Number of data octets transmitted on all links"
    ),
    "port_discards_received_total": _CounterFile(
        "port_rcv_discards",
        "Number of inbound packets discarded by the port because the port is down or congested",
    ),
    "port_discards_transmitted_total": _CounterFile(
        "port_xmit_discards",
        "Number of outbound packets discarded by the port because the port is down or congested",
    ),
    "port_errors_received_total": _CounterFile(
        "port_rcv_errors", "Number of packets containing an error that were received on this port"
    ),
    "port_packets_received_total": _CounterFile(
        "port_rcv_packets", "Number of packets received on all VLs by this port (including errors)"
    ),
    "port_packets_transmitted_total": _CounterFile(
        "port_xmit_packets", "Number of packets transmitted on all VLs from this port (including errors)"
    ),
    "port_transmit_wait_total": _CounterFile(
        "port_xmit_wait",
        "Number of ticks during which the port had data to transmit but no data was sent "
        "during the entire tick",
    ),
    "unicast_packets_received_total": _CounterFile(
        "unicast_rcv_packets", "Number of unicast packets received (including errors)"
    ),
    "unicast_packets_transmitted_total": _CounterFile(
        "unicast_xmit_packets", "Number of unicast packets transmitted (including errors)"
    ),
}

# Deprecated counters of some older drivers.
LEGACY_COUNTERS: dict[str, _CounterFile] = {
    "legacy_multicast_packets_received_total": _CounterFile(
        "port_multicast_rcv_packets", "Number of multicast packets received"
    ),
    "legacy_multicast_packets_transmitted_total": _CounterFile(
        "port_multicast_xmit_packets", "Number of multicast packets transmitted"
    ),
    "legacy_data_received_bytes_total": _CounterFile(
        "port_rcv_data_64", "Number of data octets received on all links"
    ),
    "legacy_packets_received_total": _CounterFile(
        "port_rcv_packets_64", "Number of data packets received on all links"
    ),
    "legacy_unicast_packets_received_total": _CounterFile(
        "port_unicast_rcv_packets", "Number of unicast packets received"
    ),
    "legacy_unicast_packets_transmitted_total": _CounterFile(
        "port_unicast_xmit_packets", "Number of unicast packets transmitted"
    ),
    "legacy_data_transmitted_bytes_total": _CounterFile(
        "port_xmit_data_64", "Number of data octets transmitted on all links"
    ),
    "legacy_packets_transmitted_total": _CounterFile(
        "port_xmit_packets_64", "Number of data packets received on all links"
    ),
}


def infiniband_devices(path: str | os.PathLike) -> list[str]:
    """Names of the InfiniBand devices below ``path``."""
    devices = sorted(glob.glob(os.path.join(os.fspath(path), "*")))
    if not devices:
        logger.debug("Unable to detect InfiniBand devices")
        raise NoInfinibandDevicesError()
    return [os.path.basename(device) for device in devices]


def infiniband_ports(path: str | os.PathLike, device: str) -> list[str]:
    """Port numbers of an InfiniBand device."""
    ports = sorted(glob.glob(os.path.join(os.fspath(path), device, "ports", "*")))
    if not ports:
        logger.debug("Unable to detect ports for %s", device)
        raise NoInfinibandPortsError()
    return [os.path.basename(port) for port in ports]


def read_metric(directory: str | os.PathLike, metric_file: str) -> int:
    """Read one counter; unavailable counters read as zero, per-lane data is scaled to the port."""
    try:
        value = read_uint_from_file(os.path.join(os.fspath(directory), metric_file))
    except ValueError as err:
        # Some drivers report "N/A (no PMA)" for counters they lack.
        if "N/A (no PMA)" in str(err):
            logger.debug("%r value is N/A", metric_file)
            return 0
        logger.debug("Error reading %r file", metric_file)
        raise
    except OSError:
        logger.debug("Error reading %r file", metric_file)
        raise
    if metric_file in _PER_LANE_FILES:
        value *= 4
    return value


class InfinibandCollector(Collector):
    """Exposes InfiniBand port counters."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.counters = COUNTERS
        self.legacy_counters = LEGACY_COUNTERS
        self.metric_descs: dict[str, Desc] = {
            name: Desc(
                build_fq_name(NAMESPACE, INFINIBAND_SUBSYSTEM, name),
                counter.help,
                ("device", "port"),
            )
            for name, counter in {**COUNTERS, **LEGACY_COUNTERS}.items()
        }

    def _port_metrics(
        self, directory: str, counters: dict[str, _CounterFile], device: str, port: str
    ) -> Iterator[Metric]:
        for name, counter in sorted(counters.items()):
            if not os.path.exists(os.path.join(directory, counter.file)):
                continue
            value = read_metric(directory, counter.file)
            yield const_metric(self.metric_descs[name], ValueType.COUNTER, value, device, port)

    def update(self) -> Iterator[Metric]:
        base = self.settings.sys_file_path(INFINIBAND_PATH)
        try:
            devices = infiniband_devices(base)
        except NoInfinibandDevicesError:
            # InfiniBand is most likely not installed.
            return

        for device in devices:
            try:
                ports = infiniband_ports(base, device)
            except NoInfinibandPortsError:
                continue
            for port in ports:
                port_dir = self.settings.sys_file_path(INFINIBAND_PATH, device, "ports", port)
                yield from self._port_metrics(
                    os.path.join(port_dir, "counters"), self.counters, device, port
                )
                yield from self._port_metrics(
                    os.path.join(port_dir, "counters_ext"), self.legacy_counters, device, port
                )


def register(registry: CollectorRegistry) -> None:
    registry.register("infiniband", True, InfinibandCollector)