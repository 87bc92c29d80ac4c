import pytest

from nodemetrics.config import Settings
from nodemetrics.drbd import DRBDCollector, parse_drbd, register
from nodemetrics.registry import CollectorRegistry

SAMPLE = """version: 8.4.3 (api:1/proto:86)
 1: cs:Connected ro:Primary/Secondary ds:UpToDate/Diskless C r-----
    ns:100 nr:200 dw:300 dr:400 al:5 bm:6 lo:0 pe:0 ua:0 ap:0 ep:1 wo:f oos:7
"""


def _by_name(metrics):
    result = {}
    for metric in metrics:
        result.setdefault(metric.name, []).append(metric)
    return result


def test_device_label_from_id():
    metrics = parse_drbd(SAMPLE)
    assert metrics
    assert {m.labels["device"] for m in metrics} == {"drbd1"}


def test_numerical_values_and_multiplier():
    metrics = _by_name(parse_drbd(SAMPLE))
    assert metrics["node_drbd_network_received_bytes_total"][0].value == 200.0
    assert metrics["node_drbd_activitylog_writes_total"][0].value == 5.0
    sent = metrics["node_drbd_network_sent_bytes_total"][0]
    assert sent.value == 100 * 1024
    assert metrics["node_drbd_out_of_sync_bytes"][0].value == 7 * 1024


def test_string_pairs():
    metrics = _by_name(parse_drbd(SAMPLE))
    role = {m.labels["node"]: m.value for m in metrics["node_drbd_node_role_is_primary"]}
    assert role == {"local": 1.0, "remote": 0.0}
    disk = {m.labels["node"]: m.value for m in metrics["node_drbd_disk_state_is_up_to_date"]}
    assert disk == {"local": 1.0, "remote": 0.0}


def test_connection_state():
    connected = _by_name(parse_drbd(SAMPLE))["node_drbd_connected"]
    assert [m.value for m in connected] == [1.0]
    disconnected = _by_name(parse_drbd("0: cs:StandAlone"))["node_drbd_connected"]
    assert disconnected[0].value == 0.0
    assert disconnected[0].labels["device"] == "drbd0"


def test_unknown_device_before_id():
    metrics = parse_drbd("nr:3")
    assert len(metrics) == 1
    assert metrics[0].labels["device"] == "unknown"


def test_unknown_words_ignored():
    assert parse_drbd("version: 8.4.3 (api:1/proto:86) wo:f C") == []


def test_invalid_number_raises():
    with pytest.raises(ValueError):
        parse_drbd("1: ns:abc")


def test_string_pair_without_slash_raises():
    with pytest.raises(ValueError):
        parse_drbd("1: ro:Primary")


def test_collector_reads_file(tmp_path):
    (tmp_path / "drbd").write_text(SAMPLE)
    metrics = list(DRBDCollector(Settings(proc_path=str(tmp_path))).update())
    assert len(metrics) == len(parse_drbd(SAMPLE))


def test_collector_missing_file(tmp_path):
    assert list(DRBDCollector(Settings(proc_path=str(tmp_path))).update()) == []


def test_register_disabled_by_default():
    registry = CollectorRegistry()
    register(registry)
    assert registry.is_enabled("drbd") is False