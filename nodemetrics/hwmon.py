"""Hardware monitoring sensors from /sys/class/hwmon, similar to lm-sensors."""

from __future__ import annotations

import logging
import math
import os
import re
from collections.abc import Iterator

from .config import Settings
from .metrics import Desc, Metric, ValueType, const_metric
from .registry import Collector, CollectorRegistry

logger = logging.getLogger(__name__)

HWMON_LABEL_NAMES = ("chip", "sensor")
HWMON_CHIP_NAME_LABEL_NAMES = ("chip", "chip_name")
HWMON_SENSOR_TYPES = (
    "vrm", "beep_enable", "update_interval", "in", "cpu", "fan",
    "pwm", "temp", "curr", "power", "energy", "humidity",
    "intrusion",
)

_INVALID_METRIC_CHARS = re.compile(r"[^a-z0-9:_]")
_FILENAME_FORMAT = re.compile(r"(?P<type>[^0-9]+)(?P<id>[0-9]*)?(_(?P<property>.+))?")
_INT64_MAX = 2**63 - 1
_READ_SIZE = 128

_CHIP_NAMES_DESC = Desc(
    "node_hwmon_chip_names",
    "Annotation metric for human-readable chip names",
    HWMON_CHIP_NAME_LABEL_NAMES,
)
_SENSOR_LABEL_DESC = Desc(
    "node_hwmon_sensor_label",
    "Label for given chip and sensor",
    ("chip", "sensor", "label"),
)


def clean_metric_name(name: str) -> str:
    """Lower-case a name, replace invalid characters by '_' and trim underscores."""
    return _INVALID_METRIC_CHARS.sub("_", name.lower()).strip("_")


def explode_sensor_filename(filename: str) -> tuple[str, int, str] | None:
    """Split a sensor file name into (type, number, property); ``None`` if it does not fit."""
    match = _FILENAME_FORMAT.fullmatch(filename)
    if match is None:
        return None
    sensor_type = match.group("type") or ""
    sensor_property = match.group("property") or ""
    digits = match.group("id") or ""
    sensor_num = 0
    if digits:
        sensor_num = int(digits)
        if sensor_num > _INT64_MAX:
            return None
    return sensor_type, sensor_num, sensor_property


def _read_sensor_file(path: str) -> bytes:
    # Some broken drivers answer EAGAIN forever; a single raw read either
    # yields data or fails at once.
    fd = os.open(path, os.O_RDONLY)
    try:
        return os.read(fd, _READ_SIZE)
    finally:
        os.close(fd)


def _add_value_file(data: dict[str, dict[str, str]], sensor: str, prop: str, path: str) -> None:
    try:
        raw = _read_sensor_file(path)
    except OSError:
        return
    value = raw.decode("utf-8", errors="replace").strip("\n")
    data.setdefault(sensor, {})[prop] = value


def collect_sensor_data(directory: str | os.PathLike, data: dict[str, dict[str, str]]) -> None:
    """Add the readable sensor files of ``directory`` to ``data``, keyed by sensor and property."""
    directory = os.fspath(directory)
    for filename in sorted(os.listdir(directory)):
        exploded = explode_sensor_filename(filename)
        if exploded is None:
            continue
        sensor_type, sensor_num, sensor_property = exploded
        if sensor_type in HWMON_SENSOR_TYPES:
            _add_value_file(
                data,
                f"{sensor_type}{sensor_num}",
                sensor_property,
                os.path.join(directory, filename),
            )


def _parse_float(text: str) -> float:
    if "_" in text or text != text.strip():
        raise ValueError(f"invalid float {text!r}")
    value = float(text)
    if math.isinf(value) and "inf" not in text.lower():
        raise ValueError(f"value out of range {text!r}")
    return value


def _element_metric(
    name: str, sensor_type: str, element: str, value: float, labels: tuple[str, str]
) -> Metric:
    gauge = ValueType.GAUGE

    def desc(metric_name: str, help_text: str) -> Desc:
        return Desc(metric_name, help_text, HWMON_LABEL_NAMES)

    # Fault, alarm and beep elements carry no unit.
    if element in ("fault", "alarm"):
        return const_metric(
            desc(name, f"Hardware sensor {element} status ({sensor_type})"), gauge, value, *labels
        )
    if element == "beep":
        return const_metric(
            desc(name + "_enabled", "Hardware monitor sensor has beeping enabled"),
            gauge,
            value,
            *labels,
        )

    if sensor_type in ("in", "cpu"):
        return const_metric(
            desc(name + "_volts", f"Hardware monitor for voltage ({element})"),
            gauge,
            value * 0.001,
            *labels,
        )
    if sensor_type == "temp" and element != "type":
        shown = element or "input"
        return const_metric(
            desc(name + "_celsius", f"Hardware monitor for temperature ({shown})"),
            gauge,
            value * 0.001,
            *labels,
        )
    if sensor_type == "curr":
        return const_metric(
            desc(name + "_amps", f"Hardware monitor for current ({element})"),
            gauge,
            value * 0.001,
            *labels,
        )
    if sensor_type == "energy":
        return const_metric(
            desc(name + "_joule_total", f"Hardware monitor for joules used so far ({element})"),
            ValueType.COUNTER,
            value / 1000000.0,
            *labels,
        )
    if sensor_type == "power" and element == "accuracy":
        return const_metric(
            desc(name, "Hardware monitor power meter accuracy, as a ratio"),
            gauge,
            value / 1000000.0,
            *labels,
        )
    if sensor_type == "power" and element in (
        "average_interval",
        "average_interval_min",
        "average_interval_max",
    ):
        return const_metric(
            desc(name + "_seconds", f"Hardware monitor power usage update interval ({element})"),
            gauge,
            value * 0.001,
            *labels,
        )
    if sensor_type == "power":
        return const_metric(
            desc(name + "_watt", f"Hardware monitor for power usage in watts ({element})"),
            gauge,
            value / 1000000.0,
            *labels,
        )
    if sensor_type == "humidity":
        return const_metric(
            desc(
                name,
                "Hardware monitor for humidity, as a ratio (multiply with 100.0 to get the "
                f"humidity as a percentage) ({element})",
            ),
            gauge,
            value / 1000000.0,
            *labels,
        )
    if sensor_type == "fan" and element in ("input", "min", "max", "target"):
        return const_metric(
            desc(name + "_rpm", f"Hardware monitor for fan revolutions per minute ({element})"),
            gauge,
            value,
            *labels,
        )

    # Anything else is exposed as it is.
    return const_metric(
        desc(name, f"Hardware monitor {sensor_type} element {element}"), gauge, value, *labels
    )


def _sensor_metrics(chip: str, sensor: str, sensor_data: dict[str, str]) -> Iterator[Metric]:
    exploded = explode_sensor_filename(sensor)
    sensor_type = exploded[0] if exploded else ""
    labels = (chip, sensor)
    gauge = ValueType.GAUGE

    label_text = sensor_data.get("label")
    if label_text is not None:
        label = clean_metric_name(label_text)
        if label:
            yield const_metric(_SENSOR_LABEL_DESC, gauge, 1.0, chip, sensor, label)

    if sensor_type == "beep_enable":
        value = 1.0 if sensor_data.get("") == "1" else 0.0
        yield const_metric(
            Desc("node_hwmon_beep_enabled", "Hardware beep enabled", HWMON_LABEL_NAMES),
            gauge,
            value,
            *labels,
        )
        return
    if sensor_type == "vrm":
        try:
            value = _parse_float(sensor_data.get("", ""))
        except ValueError:
            return
        yield const_metric(
            Desc("node_hwmon_voltage_regulator_version", "Hardware voltage regulator", HWMON_LABEL_NAMES),
            gauge,
            value,
            *labels,
        )
        return
    if sensor_type == "update_interval":
        try:
            value = _parse_float(sensor_data.get("", ""))
        except ValueError:
            return
        yield const_metric(
            Desc(
                "node_hwmon_update_interval_seconds",
                "Hardware monitor update interval",
                HWMON_LABEL_NAMES,
            ),
            gauge,
            value * 0.001,
            *labels,
        )
        return

    prefix = "node_hwmon_" + sensor_type
    for element, raw in sorted(sensor_data.items()):
        if element == "label":
            continue
        name = prefix
        if element == "input":
            # "input" is the value itself unless a bare value file exists too.
            if "" in sensor_data:
                name += "_input"
        elif element:
            name += "_" + clean_metric_name(element)
        try:
            value = _parse_float(raw)
        except ValueError:
            continue
        yield _element_metric(name, sensor_type, element, value, labels)


class HwMonCollector(Collector):
    """Exposes hardware monitor sensor readings."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def hwmon_name(self, directory: str | os.PathLike) -> str:
        """A stable name for a hardware monitor directory."""
        directory = os.fspath(directory)

        # Preference 1: the device path, which is stable and unique.
        try:
            device_path = os.path.realpath(os.path.join(directory, "device"), strict=True)
        except OSError:
            device_path = None
        if device_path is not None:
            dev_name = os.path.basename(device_path)
            prefix = device_path[: len(device_path) - len(dev_name)]
            dev_type = os.path.basename(prefix.rstrip("/"))
            clean_name = clean_metric_name(dev_name)
            clean_type = clean_metric_name(dev_type)
            if clean_type and clean_name:
                return f"{clean_type}_{clean_name}"
            if clean_name:
                return clean_name

        # Preference 2: the name file.
        try:
            with open(os.path.join(directory, "name"), encoding="utf-8", errors="replace") as file:
                sysname = file.read()
        except OSError:
            sysname = ""
        if sysname:
            clean_name = clean_metric_name(sysname)
            if clean_name:
                return clean_name

        # Last resort: the hwmonX directory name.
        real_dir = os.path.realpath(directory, strict=True)
        clean_name = clean_metric_name(os.path.basename(real_dir))
        if clean_name:
            return clean_name
        raise ValueError(f"Could not derive a monitoring name for {directory}")

    def hwmon_human_readable_chip_name(self, directory: str | os.PathLike) -> str:
        """The chip name from the name file; duplicates between chips are allowed."""
        directory = os.fspath(directory)
        with open(os.path.join(directory, "name"), encoding="utf-8", errors="replace") as file:
            sysname = file.read()
        if sysname:
            clean_name = clean_metric_name(sysname)
            if clean_name:
                return clean_name
        raise ValueError(f"Could not derive a human-readable chip type for {directory}")

    def update_hwmon(self, directory: str | os.PathLike) -> Iterator[Metric]:
        """Metrics of one hardware monitor directory."""
        directory = os.fspath(directory)
        chip = self.hwmon_name(directory)

        data: dict[str, dict[str, str]] = {}
        collect_sensor_data(directory, data)
        device_dir = os.path.join(directory, "device")
        if os.path.exists(device_dir):
            collect_sensor_data(device_dir, data)

        try:
            chip_name = self.hwmon_human_readable_chip_name(directory)
        except (OSError, ValueError):
            pass
        else:
            yield const_metric(_CHIP_NAMES_DESC, ValueType.GAUGE, 1.0, chip, chip_name)

        for sensor in sorted(data):
            yield from _sensor_metrics(chip, sensor, data[sensor])

    def update(self) -> Iterator[Metric]:
        hwmon_path = os.path.join(self.settings.sys_file_path("class"), "hwmon")
        try:
            entries = sorted(os.listdir(hwmon_path))
        except FileNotFoundError:
            logger.debug("hwmon collector metrics are not available for this system")
            return

        last_error: Exception | None = None
        for entry in entries:
            path = os.path.join(hwmon_path, entry)
            if not os.path.isdir(path):
                continue
            try:
                metrics = list(self.update_hwmon(path))
            except (OSError, ValueError) as err:
                last_error = err
                continue
            yield from metrics
        if last_error is not None:
            raise last_error


def register(registry: CollectorRegistry) -> None:
    registry.register("hwmon", True, HwMonCollector)