import pytest

from nodemetrics.config import Settings
from nodemetrics.entropy import EntropyCollector, register
from nodemetrics.metrics import ValueType
from nodemetrics.registry import CollectorRegistry


def _write(tmp_path, content):
    target = tmp_path / "sys" / "kernel" / "random" / "entropy_avail"
    target.parent.mkdir(parents=True)
    target.write_text(content)
    return Settings(proc_path=str(tmp_path))


def test_update_reports_entropy(tmp_path):
    settings = _write(tmp_path, "1337\n")
    metrics = list(EntropyCollector(settings).update())
    assert [(m.name, m.value) for m in metrics] == [("node_entropy_available_bits", 1337.0)]
    assert metrics[0].value_type is ValueType.GAUGE


def test_update_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(EntropyCollector(Settings(proc_path=str(tmp_path))).update())


def test_update_invalid_content(tmp_path):
    settings = _write(tmp_path, "lots\n")
    with pytest.raises(ValueError):
        list(EntropyCollector(settings).update())


def test_register_enabled_by_default():
    registry = CollectorRegistry()
    register(registry)
    assert registry.is_enabled("entropy") is True