# npdetect

`npdetect` holds the building blocks of a node problem detector. It reads
and checks custom plugin monitor configuration and turns plugin check
results into node conditions and events. It keeps those conditions in sync
with a problem client. It also provides a registry for pluggable exporters,
the Stackdriver exporter configuration, and the detector's command-line
options.

The package has no dependencies outside the standard library.

## Modules

| Module | Contents |
| --- | --- |
| `npdetect.duration` | `parse_duration` and `format_duration` for duration strings such as `"300ms"`, `"1m30s"` or `"10m0s"` |
| `npdetect.plugintypes` | `Status`, `ProblemType`, `ConditionStatus`, `Severity`, `Condition`, `Event`, `CustomRule`, `Result` |
| `npdetect.pluginconfig` | `CustomPluginConfig`, `PluginGlobalConfig` and `ConfigError` |
| `npdetect.pluginmonitor` | `CustomPluginMonitor`, `MonitorStatus`, `load_config`, `to_condition_status`, `initial_conditions` |
| `npdetect.exporters` | `ExporterRegistry`, `ExporterHandler` and a module-level `default_registry` |
| `npdetect.stackdriver` | `StackdriverExporterConfig` and `GCEMetadata` |
| `npdetect.problemclient` | `NodeCondition`, `ObjectReference`, `ConfigOverrides`, `FakeProblemClient`, `parse_bool`, `get_config_overrides`, `generate_patch`, `node_reference`, `to_node_condition` |
| `npdetect.conditions` | `ConditionManager` and `RealClock` |
| `npdetect.options` | `NodeProblemDetectorOptions`, `OptionsError` and `parse_options` |

## Durations

```python
from npdetect.duration import parse_duration, format_duration

parse_duration("1m30s")   # 90.0 (seconds)
format_duration(600)      # "10m0s"
```

Valid units are `ns`, `us` (or `µs`), `ms`, `s`, `m` and `h`. Malformed
input raises `ValueError`.

## Custom plugin monitor configuration

A configuration is a JSON document:

```json
{
  "plugin": "custom",
  "pluginConfig": {
    "invoke_interval": "30s",
    "timeout": "5s",
    "max_output_length": 80,
    "concurrency": 3
  },
  "source": "ntp-custom-plugin-monitor",
  "conditions": [
    {"type": "NTPProblem", "reason": "NTPIsUp", "message": "ntp service is up"}
  ],
  "rules": [
    {
      "type": "permanent",
      "condition": "NTPProblem",
      "reason": "NTPIsDown",
      "path": "./config/plugin/check_ntp.sh",
      "timeout": "3s"
    }
  ]
}
```

```python
import json
from npdetect.pluginconfig import CustomPluginConfig, ConfigError

with open("custom-plugin-monitor.json") as fh:
    config = CustomPluginConfig.from_dict(json.load(fh))

config.apply_configuration()   # fills defaults, parses duration strings
try:
    config.validate()
except ConfigError as exc:
    print(f"invalid configuration: {exc}")
```

`apply_configuration` fills in every global setting that was left out:

- `timeout`: `"5s"`;
- `invoke_interval`: `"30s"`;
- `max_output_length`: 80;
- `concurrency`: 3;
- `enable_message_change_based_condition_update`: off;
- `skip_initial_status`: off;
- `metricsReporting`: on.

It also parses the global and per-rule timeouts into seconds. A duration
that cannot be parsed raises `ConfigError`.

`validate` raises `ConfigError` in these cases:

- the plugin is anything other than `"custom"`;
- a rule's timeout is longer than the global timeout;
- a rule's path does not exist;
- a permanent rule names a condition that has no default condition.

`npdetect.pluginmonitor.load_config(path)` does all of these steps for a
file: it reads the file, decodes it, applies the defaults and validates the
result.

## Turning plugin results into status

```python
from npdetect.pluginmonitor import CustomPluginMonitor
from npdetect.plugintypes import Result, Status

monitor = CustomPluginMonitor.from_file("custom-plugin-monitor.json")
initial = monitor.initialize_status()   # every default condition set to False

rule = monitor.config.rules[0]
status = monitor.generate_status(Result(rule=rule, exit_status=Status.NON_OK, message="ntp down"))
print(status.events, status.conditions)
```

The two kinds of rule are handled differently.

- **Temporary rules** produce a `Severity.WARN` event when the exit status is
  `NON_OK` or `UNKNOWN`.
- **Permanent rules** update their condition:
  - `OK` maps to `False`, `NON_OK` to `True`, and anything else to `Unknown`.
  - A `Severity.INFO` event is emitted when the status changes.
  - An event is also emitted when the reason changes while the condition
    stays true.
  - If message-based updates are enabled, a change of message while the
    condition stays true emits an event as well.
  - When a condition leaves `True`, it goes back to the default reason. It
    takes the default message for `False`, and the plugin's message for
    `Unknown`.

To get problem metrics, build the monitor directly with
`CustomPluginMonitor(config, metrics=...)`. The `metrics` object must have
`set_problem_gauge(condition_type, reason, active)` and
`increment_problem_counter(reason, count)`. Metrics are reported only when
`metricsReporting` is on.

## Exporters

```python
from npdetect.exporters import ExporterRegistry, ExporterHandler

registry = ExporterRegistry()
registry.register("null", ExporterHandler(create_exporter=lambda options: object()))
print(registry.names())                 # ["null"]
exporters = registry.create_exporters()  # handlers returning None are skipped
```

`registry.handler(name)` raises `LookupError` for a name that was never
registered.

## Stackdriver exporter configuration

```python
from npdetect.stackdriver import StackdriverExporterConfig

config = StackdriverExporterConfig.from_dict({})
config.apply_configuration()
# export_period "1m0s", metadata_fetch_timeout "10m0s",
# metadata_fetch_interval "10s", api_endpoint "monitoring.googleapis.com:443"
```

`GCEMetadata.has_missing_field()` reports whether any of `project_id`,
`zone`, `instance_id` or `instance_name` is empty.

`GCEMetadata.populate(fetch)` calls `fetch(field_name)` for each empty field,
in that order. If `fetch` raises, the error propagates.

## Problem client pieces

`npdetect.problemclient` provides the following:

- `generate_patch(conditions)` builds the node status patch
  `{"status":{"conditions":[...]}}` as bytes.
- `get_config_overrides(uri)` extracts the server address and the `insecure`
  query flag from an API server URI.
- `parse_bool` accepts `1/t/T/TRUE/true/True` and `0/f/F/FALSE/false/False`.
- `FakeProblemClient` keeps conditions in memory. It records events in its
  `events` list as `"<type> <reason> <message>"`.
  - It can have errors injected for `"set_conditions"` or `"get_conditions"`
    with `inject_error`.
  - `assert_conditions(expected)` raises `AssertionError` on a mismatch.

## Condition synchronisation

```python
from npdetect.conditions import ConditionManager
from npdetect.problemclient import FakeProblemClient

client = FakeProblemClient()
manager = ConditionManager(client, heartbeat_period=60.0)
manager.start()
# manager.update_condition(condition)
manager.stop()
```

The manager keeps only the newest queued update per condition type. A
background thread checks every second and pushes all conditions to the
client in three cases:

- when an update changed a condition;
- 10 seconds after a failed push;
- once every heartbeat period in any case.

`need_updates`, `need_resync`, `need_heartbeat` and `sync` can also be called
directly. The clock can be replaced by any object with `now()` and
`since(moment)`.

## Detector options

```python
from npdetect.options import parse_options, OptionsError

opts = parse_options(
    ["--config.custom-plugin-monitor", "custom-plugin-monitor.json"],
    ["custom-plugin-monitor", "system-log-monitor"],
)
opts.set_node_name()
opts.set_config_from_deprecated_options()
opts.valid_or_die()   # raises OptionsError; returns the number of config files
```

`set_node_name` uses the first of these that is set:

1. `--hostname-override`;
2. the `NODE_NAME` environment variable;
3. the machine's host name.

The deprecated `--system-log-monitors` and `--custom-plugin-monitors` options
are moved into `monitor_config_paths`. Setting a deprecated option together
with its `--config.<monitor>` replacement raises `OptionsError`.

## What this package does not do

It does not run plugin programs, and it does not start the detector. No
command is installed. It contains no client that talks to a real API server,
only `FakeProblemClient`. It serves no HTTP or Prometheus endpoints, and it
does not send metrics anywhere. It has no system log or system stats
monitoring. These pieces have to be supplied by the application that uses
the package.