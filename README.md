# nodemetrics

`nodemetrics` gathers host metrics on Linux by reading the kernel's
`/proc` and `/sys` trees. It produces metric samples that follow the
Prometheus naming conventions, such as `node_disk_read_bytes_total` or
`node_filesystem_avail_bytes`. It needs nothing beyond the standard library.

## Collectors

Each collector module reads one area of the system and has a
`register(registry)` function that adds it to a `CollectorRegistry` under
the name shown:

| Module                   | Name         | Reads                                   | Enabled by default |
|--------------------------|--------------|-----------------------------------------|--------------------|
| `nodemetrics.bonding`    | `bonding`    | `/sys/class/net/*/bonding`              | yes                |
| `nodemetrics.conntrack`  | `conntrack`  | `/proc/sys/net/netfilter`               | yes                |
| `nodemetrics.diskstats`  | `diskstats`  | `/proc/diskstats`                       | yes                |
| `nodemetrics.drbd`       | `drbd`       | `/proc/drbd`                            | no                 |
| `nodemetrics.edac`       | `edac`       | `/sys/devices/system/edac/mc`           | yes                |
| `nodemetrics.entropy`    | `entropy`    | `/proc/sys/kernel/random/entropy_avail` | yes                |
| `nodemetrics.filefd`     | `filefd`     | `/proc/sys/fs/file-nr`                  | yes                |
| `nodemetrics.filesystem` | `filesystem` | `/proc/1/mounts` (or `/proc/mounts`) and `statvfs` | yes     |
| `nodemetrics.hwmon`      | `hwmon`      | `/sys/class/hwmon`                      | yes                |
| `nodemetrics.infiniband` | `infiniband` | `/sys/class/infiniband`                 | yes                |
| `nodemetrics.interrupts` | `interrupts` | `/proc/interrupts`                      | no                 |

## Usage

Register the collectors you want, build a `NodeCollector` and collect.
The node collector runs its collectors in threads. For each one it adds
`node_scrape_collector_duration_seconds` and `node_scrape_collector_success`.
A collector that raises is reported with success `0`, and the rest of the
scrape goes on.

```python
from nodemetrics import bonding, diskstats, filesystem, interrupts
from nodemetrics.config import Settings
from nodemetrics.registry import CollectorRegistry

registry = CollectorRegistry()
for module in (bonding, diskstats, filesystem, interrupts):
    module.register(registry)
registry.set_enabled("interrupts", True)

node = registry.create_node_collector(Settings())
for metric in node.collect():
    print(metric.name, metric.labels, metric.value)
```

Every enabled collector is built. To keep only some of them, pass their
names:

```python
node = registry.create_node_collector(Settings(), "diskstats", "filesystem")
```

A name that is not registered, or one that is disabled, raises
`ValueError`. `set_enabled` and `is_enabled` raise `KeyError` for unknown
names. Registering a name twice raises `ValueError`.

### Settings

`nodemetrics.config.Settings` is a frozen dataclass. It tells the
collectors where to read from and which devices to skip:

- `proc_path` (default `/proc`), `sys_path` (`/sys`) and `rootfs_path` (`/`).
  You can point these at a copy of the trees, for example test fixtures or a
  host filesystem mounted in a container.
- `diskstats_ignored_devices`: a regular expression for disk devices to skip.
- `filesystem_ignored_mount_points` and `filesystem_ignored_fs_types`:
  regular expressions for the mounts to skip.

### Metrics

Each sample is a `nodemetrics.metrics.Metric`. It holds its `Desc` (name,
help text and label names), a `ValueType` (`COUNTER`, `GAUGE` or
`UNTYPED`), a float `value` and its label values. Its `name` property gives
the metric name, and `labels` gives a mapping from label name to value.

### Parsers

The parsing functions can also be used on their own:

- `diskstats.parse_disk_stats(lines)`: device name to its raw fields.
- `interrupts.parse_interrupts(lines)`: interrupt name to an `Interrupt`.
- `filefd.parse_file_fd_stats(path)`: the `allocated` and `maximum` values.
- `filesystem.parse_filesystem_labels(lines)` and
  `filesystem.mount_point_details(settings)`.
- `drbd.parse_drbd(text)`: metrics from the contents of `/proc/drbd`.
- `bonding.read_bonding_stats(root)`: master to (configured, active) slave
  counts.
- `hwmon.clean_metric_name`, `hwmon.explode_sensor_filename` and
  `hwmon.collect_sensor_data`.
- `infiniband.infiniband_devices`, `infiniband.infiniband_ports` and
  `infiniband.read_metric`.

```python
from nodemetrics.diskstats import parse_disk_stats

with open("/proc/diskstats") as stream:
    stats = parse_disk_stats(stream)
```

## Writing a collector

A collector is a subclass of `nodemetrics.registry.Collector` whose
`update()` returns or yields metrics. Build each metric with
`nodemetrics.metrics.const_metric(desc, value_type, value, *label_values)`
or with `TypedDesc.metric(value, *label_values)`. A mismatch between the
number of label values and label names raises `ValueError`. Register a
factory that takes a `Settings` with
`registry.register(name, default_enabled, factory)`.

## What it does not do

- There is no ready-made registry with every collector in it. You call each
  module's `register` yourself.
- There are no collectors for CPU time, CPU frequency or the ARP table.
- It does not serve metrics over HTTP and does not write the Prometheus text
  format. It has no command-line program. `collect()` returns Python objects
  for you to export as you see fit.