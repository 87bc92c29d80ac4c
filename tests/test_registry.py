import pytest

from nodemetrics.config import Settings
from nodemetrics.metrics import (
    SCRAPE_DURATION_DESC,
    SCRAPE_SUCCESS_DESC,
    Desc,
    ValueType,
    const_metric,
)
from nodemetrics.registry import (
    Collector,
    CollectorRegistry,
    NodeCollector,
    execute,
)

_DESC = Desc("node_test_value", "Test value.", ("source",))


class _Static(Collector):
    def __init__(self, settings, values=(1.0,)):
        self.settings = settings
        self.values = values

    def update(self):
        for value in self.values:
            yield const_metric(_DESC, ValueType.GAUGE, value, "static")


class _Failing(Collector):
    def __init__(self, settings=None):
        pass

    def update(self):
        yield const_metric(_DESC, ValueType.GAUGE, 7.0, "partial")
        raise OSError("boom")


def _failing_factory(settings):
    raise RuntimeError("cannot create")


def _by_name(metrics, desc):
    return {m.label_values[0]: m.value for m in metrics if m.desc == desc}


def test_register_and_enable():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    registry.register("b", False, _Static)
    assert registry.is_enabled("a") is True
    assert registry.is_enabled("b") is False
    registry.set_enabled("b", True)
    assert registry.is_enabled("b") is True
    assert list(registry) == ["a", "b"]
    assert "a" in registry and "c" not in registry


def test_duplicate_registration_rejected():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    with pytest.raises(ValueError):
        registry.register("a", False, _Static)


def test_unknown_collector_state():
    registry = CollectorRegistry()
    with pytest.raises(KeyError):
        registry.set_enabled("nope", True)
    with pytest.raises(KeyError):
        registry.is_enabled("nope")


def test_create_includes_only_enabled():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    registry.register("b", False, _Static)
    node = registry.create_node_collector(Settings())
    assert set(node.collectors) == {"a"}
    assert node.collectors["a"].settings == Settings()


def test_create_with_filter():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    registry.register("b", True, _Static)
    node = registry.create_node_collector(Settings(), "b")
    assert set(node.collectors) == {"b"}


def test_create_missing_filter():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    with pytest.raises(ValueError, match="missing collector: zzz"):
        registry.create_node_collector(Settings(), "zzz")


def test_create_disabled_filter():
    registry = CollectorRegistry()
    registry.register("a", False, _Static)
    with pytest.raises(ValueError, match="disabled collector: a"):
        registry.create_node_collector(Settings(), "a")


def test_factory_error_propagates_even_when_filtered_out():
    registry = CollectorRegistry()
    registry.register("a", True, _Static)
    registry.register("bad", True, _failing_factory)
    with pytest.raises(RuntimeError):
        registry.create_node_collector(Settings(), "a")


def test_execute_success():
    metrics = execute("ok", _Static(None, (2.0, 3.0)))
    assert [m.value for m in metrics[:2]] == [2.0, 3.0]
    assert metrics[-1].desc == SCRAPE_SUCCESS_DESC
    assert metrics[-1].value == 1.0
    assert metrics[-2].desc == SCRAPE_DURATION_DESC
    assert metrics[-2].value >= 0.0
    assert metrics[-1].labels == {"collector": "ok"}


def test_execute_failure_keeps_partial_metrics():
    metrics = execute("bad", _Failing())
    assert metrics[0].labels == {"source": "partial"}
    assert metrics[-1].desc == SCRAPE_SUCCESS_DESC
    assert metrics[-1].value == 0.0


def test_node_collector_collect_all():
    node = NodeCollector({"ok": _Static(None), "bad": _Failing()})
    metrics = node.collect()
    success = _by_name(metrics, SCRAPE_SUCCESS_DESC)
    assert success == {"ok": 1.0, "bad": 0.0}
    assert set(_by_name(metrics, SCRAPE_DURATION_DESC)) == {"ok", "bad"}


def test_node_collector_describe_and_empty():
    node = NodeCollector()
    assert node.describe() == [SCRAPE_DURATION_DESC, SCRAPE_SUCCESS_DESC]
    assert node.collect() == []