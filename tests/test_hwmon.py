import re
from pathlib import Path

import pytest

from nodemetrics.config import Settings
from nodemetrics.hwmon import (
    HwMonCollector,
    clean_metric_name,
    collect_sensor_data,
    explode_sensor_filename,
    register,
)
from nodemetrics.metrics import ValueType
from nodemetrics.registry import CollectorRegistry

HWMON_FILES = {
    "name": "coretemp\n",
    "temp1_input": "42000\n",
    "temp1_label": "core0\n",
    "temp1_crit": "100000\n",
    "temp1_alarm": "0\n",
    "temp2_input": "bogus\n",
    "in0_input": "1200\n",
    "beep_enable": "1\n",
    "update_interval": "1000\n",
    "vrm": "9.0\n",
    "pwm1": "128\n",
    "power1_average": "15000000\n",
    "curr1_input": "500\n",
    "energy1_input": "1000000\n",
    "humidity1_input": "500000\n",
}


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)


@pytest.fixture
def sysfs(tmp_path):
    sys_root = tmp_path / "sys"
    device = sys_root / "devices" / "pci" / "chip"
    hwmon_dir = device / "hwmon" / "hwmon0"
    for name, content in HWMON_FILES.items():
        _write(hwmon_dir / name, content)
    _write(device / "fan1_input", "1200\n")
    (hwmon_dir / "device").symlink_to(device)
    (hwmon_dir / "power").mkdir()
    class_dir = sys_root / "class" / "hwmon"
    class_dir.mkdir(parents=True)
    (class_dir / "hwmon0").symlink_to(hwmon_dir)
    (class_dir / "stray").write_text("")
    return Settings(sys_path=str(sys_root))


def _by_name(metrics):
    return {(m.name, m.labels.get("sensor")): m for m in metrics}


@pytest.mark.parametrize("raw", ["Core 0", "__X-Y__", "ACPI\\thermal", "___", "a.b.c"])
def test_clean_metric_name_invariants(raw):
    cleaned = clean_metric_name(raw)
    assert re.fullmatch(r"[a-z0-9:_]*", cleaned)
    assert not cleaned.startswith("_")
    assert not cleaned.endswith("_")
    assert clean_metric_name(cleaned) == cleaned


def test_clean_metric_name_keeps_clean_names():
    assert clean_metric_name("already_clean") == "already_clean"
    assert clean_metric_name("___") == ""


@pytest.mark.parametrize(
    "filename, expected",
    [
        ("temp1_input", ("temp", 1, "input")),
        ("beep_enable", ("beep_enable", 0, "")),
        ("in0", ("in", 0, "")),
        ("fan12_min_alarm", ("fan", 12, "min_alarm")),
        ("name", ("name", 0, "")),
    ],
)
def test_explode_sensor_filename(filename, expected):
    assert explode_sensor_filename(filename) == expected


@pytest.mark.parametrize("filename", ["123", ""])
def test_explode_sensor_filename_rejects(filename):
    assert explode_sensor_filename(filename) is None


def test_collect_sensor_data(tmp_path):
    _write(tmp_path / "temp1_input", "42000\n")
    _write(tmp_path / "temp1_label", "core0\n")
    _write(tmp_path / "beep_enable", "1\n")
    _write(tmp_path / "uevent", "ignored\n")
    (tmp_path / "power").mkdir()
    data = {}
    collect_sensor_data(tmp_path, data)
    assert data == {
        "temp1": {"input": "42000", "label": "core0"},
        "beep_enable0": {"": "1"},
    }


def test_collect_sensor_data_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        collect_sensor_data(tmp_path / "missing", {})


def test_hwmon_name_prefers_device_path(sysfs):
    collector = HwMonCollector(sysfs)
    directory = Path(sysfs.sys_path) / "class" / "hwmon" / "hwmon0"
    assert collector.hwmon_name(directory) == "pci_chip"


def test_hwmon_name_from_name_file(tmp_path):
    directory = tmp_path / "hwmon1"
    _write(directory / "name", "coretemp\n")
    collector = HwMonCollector(Settings(sys_path=str(tmp_path)))
    assert collector.hwmon_name(directory) == "coretemp"


def test_hwmon_name_from_directory(tmp_path):
    directory = tmp_path / "hwmon3"
    directory.mkdir()
    collector = HwMonCollector(Settings(sys_path=str(tmp_path)))
    assert collector.hwmon_name(directory) == "hwmon3"


def test_hwmon_name_fails_without_usable_name(tmp_path):
    directory = tmp_path / "___"
    directory.mkdir()
    collector = HwMonCollector(Settings(sys_path=str(tmp_path)))
    with pytest.raises(ValueError):
        collector.hwmon_name(directory)


def test_human_readable_chip_name(tmp_path):
    collector = HwMonCollector(Settings(sys_path=str(tmp_path)))
    good = tmp_path / "good"
    _write(good / "name", "coretemp\n")
    assert collector.hwmon_human_readable_chip_name(good) == "coretemp"

    missing = tmp_path / "missing"
    missing.mkdir()
    with pytest.raises(OSError):
        collector.hwmon_human_readable_chip_name(missing)

    unusable = tmp_path / "unusable"
    _write(unusable / "name", "___\n")
    with pytest.raises(ValueError):
        collector.hwmon_human_readable_chip_name(unusable)


def test_update_metrics(sysfs):
    metrics = list(HwMonCollector(sysfs).update())
    by_name = _by_name(metrics)

    chip = by_name[("node_hwmon_chip_names", None)]
    assert chip.labels == {"chip": "pci_chip", "chip_name": "coretemp"}
    assert chip.value == 1.0

    label = by_name[("node_hwmon_sensor_label", "temp1")]
    assert label.labels["label"] == "core0"

    assert by_name[("node_hwmon_beep_enabled", "beep_enable0")].value == 1.0
    assert by_name[("node_hwmon_voltage_regulator_version", "vrm0")].value == 9.0
    assert by_name[("node_hwmon_update_interval_seconds", "update_interval0")].value == pytest.approx(1.0)
    assert by_name[("node_hwmon_temp_celsius", "temp1")].value == pytest.approx(42.0)
    assert ("node_hwmon_temp_crit_celsius", "temp1") in by_name
    assert by_name[("node_hwmon_temp_alarm", "temp1")].value == 0.0
    assert by_name[("node_hwmon_fan_rpm", "fan1")].value == 1200.0
    assert by_name[("node_hwmon_pwm", "pwm1")].value == 128.0
    assert by_name[("node_hwmon_energy_joule_total", "energy1")].value_type is ValueType.COUNTER
    assert by_name[("node_hwmon_power_average_watt", "power1")].value_type is ValueType.GAUGE
    assert ("node_hwmon_in_volts", "in0") in by_name
    assert ("node_hwmon_curr_amps", "curr1") in by_name
    assert ("node_hwmon_humidity", "humidity1") in by_name


def test_update_invariants(sysfs):
    metrics = list(HwMonCollector(sysfs).update())
    assert metrics
    assert all(m.name.startswith("node_hwmon_") for m in metrics)
    assert all(m.labels["chip"] == "pci_chip" for m in metrics)
    sensors = {m.labels.get("sensor") for m in metrics}
    assert "temp2" not in sensors
    assert "power0" not in sensors


def test_bare_value_and_input_both_present(tmp_path):
    directory = tmp_path / "class" / "hwmon" / "hwmon0"
    _write(directory / "temp3", "1000\n")
    _write(directory / "temp3_input", "2000\n")
    metrics = list(HwMonCollector(Settings(sys_path=str(tmp_path))).update())
    names = {m.name for m in metrics if m.labels.get("sensor") == "temp3"}
    assert names == {"node_hwmon_temp_celsius", "node_hwmon_temp_input_celsius"}


def test_update_without_hwmon_directory(tmp_path):
    assert list(HwMonCollector(Settings(sys_path=str(tmp_path))).update()) == []


def test_update_reports_error_after_other_chips(sysfs):
    (Path(sysfs.sys_path) / "class" / "hwmon" / "___").mkdir()
    collected = []
    with pytest.raises(ValueError):
        for metric in HwMonCollector(sysfs).update():
            collected.append(metric)
    assert any(m.name == "node_hwmon_chip_names" for m in collected)


def test_register():
    registry = CollectorRegistry()
    register(registry)
    assert "hwmon" in registry
    assert registry.is_enabled("hwmon") is True