"""Command-line options of the node problem detector."""

from __future__ import annotations

import argparse
import csv
import os
import re
import socket
import sys
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields
from typing import Any

from npdetect.duration import parse_duration
from npdetect.exporters import default_registry
from npdetect.problemclient import parse_bool

# Fixed here so the deprecated flags work without depending on the monitors.
CUSTOM_PLUGIN_MONITOR_NAME = "custom-plugin-monitor"
SYSTEM_LOG_MONITOR_NAME = "system-log-monitor"

_MONITOR_DEST_PREFIX = "monitor_config:"
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


class OptionsError(ValueError):
    """Raised when the options are inconsistent or cannot be completed."""


def _check_uri(text: str) -> None:
    """Raise ValueError if ``text`` is not a parseable URI reference."""
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in text):
        raise ValueError("invalid control character in URL")
    if _BAD_ESCAPE.search(text):
        raise ValueError("invalid URL escape")
    rest = text.split("#", 1)[0]
    scheme = ""
    for index, ch in enumerate(rest):
        if ch.isascii() and ch.isalpha():
            continue
        if ch.isascii() and (ch.isdigit() or ch in "+-."):
            if index == 0:
                break
            continue
        if ch == ":":
            if index == 0:
                raise ValueError("missing protocol scheme")
            scheme, rest = rest[:index], rest[index + 1 :]
        break
    rest = rest.split("?", 1)[0]
    if not scheme and not rest.startswith("/"):
        if ":" in rest.split("/", 1)[0]:
            raise ValueError("first path segment in URL cannot contain colon")
    if rest.startswith("//"):
        hostport = rest[2:].split("/", 1)[0].rpartition("@")[2]
        if hostport.startswith("["):
            closing = hostport.find("]")
            if closing < 0:
                raise ValueError("missing ']' in host")
            port_part = hostport[closing + 1 :]
            if port_part and not port_part.startswith(":"):
                raise ValueError(f"invalid port {port_part!r} after host")
            port = port_part[1:]
        else:
            port = hostport.rpartition(":")[2] if ":" in hostport else ""
        if port and not port.isdigit():
            raise ValueError(f"invalid port {':' + port!r} after host")


def _bool_arg(text: str) -> bool:
    try:
        return parse_bool(text)
    except ValueError as err:
        raise argparse.ArgumentTypeError(str(err)) from None


def _duration_arg(text: str) -> float:
    try:
        return parse_duration(text)
    except ValueError as err:
        raise argparse.ArgumentTypeError(str(err)) from None


class _CsvListAction(argparse.Action):
    """Comma separated list; repeating the flag appends to the list."""

    def __init__(self, option_strings, dest, deprecated: str | None = None, **kwargs):
        super().__init__(option_strings, dest, **kwargs)
        self._deprecated = deprecated

    def __call__(self, parser, namespace, values, option_string=None):
        if self._deprecated:
            print(f"Flag {option_string} has been deprecated, {self._deprecated}", file=sys.stderr)
        try:
            items = next(csv.reader([values]), [])
        except csv.Error as err:
            parser.error(f"invalid value {values!r} for {option_string}: {err}")
        current = getattr(namespace, self.dest, None) or []
        setattr(namespace, self.dest, [*current, *items])


@dataclass
class NodeProblemDetectorOptions:
    """Command-line and application options of the node problem detector."""

    print_version: bool = False
    hostname_override: str = ""
    server_port: int = 20256
    server_address: str = "127.0.0.1"
    enable_k8s_exporter: bool = True
    event_namespace: str = ""
    api_server_override: str = ""
    api_server_wait_timeout: float = 300.0
    api_server_wait_interval: float = 5.0
    k8s_exporter_heartbeat_period: float = 300.0
    prometheus_server_port: int = 20257
    prometheus_server_address: str = "127.0.0.1"
    system_log_monitor_config_paths: list[str] = field(default_factory=list)
    custom_plugin_monitor_config_paths: list[str] = field(default_factory=list)
    monitor_config_paths: dict[str, list[str]] = field(default_factory=dict)
    node_name: str = ""

    @classmethod
    def create(cls, problem_daemon_names: Iterable[str]) -> NodeProblemDetectorOptions:
        """Options with an empty config path list for every known problem daemon."""
        return cls(monitor_config_paths={name: [] for name in problem_daemon_names})

    def add_arguments(self, parser: argparse.ArgumentParser) -> None:
        """Declare the command-line flags on ``parser``."""
        suppress = argparse.SUPPRESS
        parser.add_argument(
            "--system-log-monitors",
            dest="system_log_monitor_config_paths",
            action=_CsvListAction,
            default=suppress,
            deprecated=(
                "replaced by --config.system-log-monitor. NPD will panic if both "
                "--system-log-monitors and --config.system-log-monitor are set."
            ),
            help="List of paths to system log monitor config files, comma separated.",
        )
        parser.add_argument(
            "--custom-plugin-monitors",
            dest="custom_plugin_monitor_config_paths",
            action=_CsvListAction,
            default=suppress,
            deprecated=(
                "replaced by --config.custom-plugin-monitor. NPD will panic if both "
                "--custom-plugin-monitors and --config.custom-plugin-monitor are set."
            ),
            help="List of paths to custom plugin monitor config files, comma separated.",
        )
        parser.add_argument(
            "--enable-k8s-exporter",
            dest="enable_k8s_exporter",
            type=_bool_arg,
            nargs="?",
            const=True,
            default=suppress,
            help="Enables reporting to Kubernetes API server.",
        )
        parser.add_argument(
            "--event-namespace",
            dest="event_namespace",
            default=suppress,
            help="Namespace for recorded Kubernetes events.",
        )
        parser.add_argument(
            "--apiserver-override",
            dest="api_server_override",
            default=suppress,
            help="Custom URI used to connect to Kubernetes ApiServer. "
            "This is ignored if --enable-k8s-exporter is false.",
        )
        parser.add_argument(
            "--apiserver-wait-timeout",
            dest="api_server_wait_timeout",
            type=_duration_arg,
            default=suppress,
            help="The timeout on waiting for kube-apiserver to be ready.",
        )
        parser.add_argument(
            "--apiserver-wait-interval",
            dest="api_server_wait_interval",
            type=_duration_arg,
            default=suppress,
            help="The interval between the checks on the readiness of kube-apiserver.",
        )
        parser.add_argument(
            "--k8s-exporter-heartbeat-period",
            dest="k8s_exporter_heartbeat_period",
            type=_duration_arg,
            default=suppress,
            help="The period at which k8s-exporter does forcibly sync with apiserver.",
        )
        parser.add_argument(
            "--version",
            dest="print_version",
            action="store_true",
            default=suppress,
            help="Print version information and quit",
        )
        parser.add_argument(
            "--hostname-override",
            dest="hostname_override",
            default=suppress,
            help="Custom node name used to override hostname",
        )
        parser.add_argument(
            "--port",
            dest="server_port",
            type=int,
            default=suppress,
            help="The port to bind the node problem detector server. Use 0 to disable.",
        )
        parser.add_argument(
            "--address",
            dest="server_address",
            default=suppress,
            help="The address to bind the node problem detector server.",
        )
        parser.add_argument(
            "--prometheus-port",
            dest="prometheus_server_port",
            type=int,
            default=suppress,
            help="The port to bind the Prometheus scrape endpoint. Use 0 to disable.",
        )
        parser.add_argument(
            "--prometheus-address",
            dest="prometheus_server_address",
            default=suppress,
            help="The address to bind the Prometheus scrape endpoint.",
        )
        for exporter_name in default_registry.names():
            exporter_options = default_registry.handler(exporter_name).options
            add = getattr(exporter_options, "add_arguments", None)
            if callable(add):
                add(parser)
        for daemon_name in self.monitor_config_paths:
            parser.add_argument(
                f"--config.{daemon_name}",
                dest=_MONITOR_DEST_PREFIX + daemon_name,
                action=_CsvListAction,
                default=suppress,
                help=f"Comma separated configurations for {daemon_name} monitor.",
            )

    def apply_arguments(self, namespace: argparse.Namespace) -> None:
        """Copy the flags given on the command line into these options."""
        given: dict[str, Any] = vars(namespace)
        for f in fields(self):
            if f.name in given:
                setattr(self, f.name, given[f.name])
        for daemon_name in self.monitor_config_paths:
            paths = given.get(_MONITOR_DEST_PREFIX + daemon_name)
            if paths is not None:
                self.monitor_config_paths[daemon_name] = list(paths)

    def valid_or_die(self) -> int:
        """Raise OptionsError if the options are invalid.

        Returns the number of monitor configuration files configured.
        """
        if self.enable_k8s_exporter:
            try:
                _check_uri(self.api_server_override)
            except ValueError as err:
                raise OptionsError(
                    f"apiserver-override {self.api_server_override!r} "
                    f"is not a valid HTTP URI: {err}"
                ) from err
        if self.system_log_monitor_config_paths:
            raise OptionsError(
                "SystemLogMonitorConfigPaths is deprecated. It should have been "
                "reassigned to MonitorConfigPaths. This should not happen."
            )
        if self.custom_plugin_monitor_config_paths:
            raise OptionsError(
                "CustomPluginMonitorConfigPaths is deprecated. It should have been "
                "reassigned to MonitorConfigPaths. This should not happen."
            )
        count = sum(len(paths) for paths in self.monitor_config_paths.values())
        if count == 0:
            raise OptionsError("No configuration option for any problem daemon is specified.")
        return count

    def _move_deprecated(self, attribute: str, daemon_name: str, label: str, flag: str) -> None:
        deprecated = getattr(self, attribute)
        if not deprecated:
            return
        if daemon_name not in self.monitor_config_paths:
            raise OptionsError(f"{label} is not supported")
        if self.monitor_config_paths[daemon_name]:
            raise OptionsError(
                f"Option --{flag} is deprecated in favor of --config.{daemon_name}. "
                "They cannot be set at the same time."
            )
        self.monitor_config_paths[daemon_name] = [*self.monitor_config_paths[daemon_name], *deprecated]
        setattr(self, attribute, [])

    def set_config_from_deprecated_options(self) -> None:
        """Move paths given by the deprecated flags into ``monitor_config_paths``."""
        self._move_deprecated(
            "system_log_monitor_config_paths",
            SYSTEM_LOG_MONITOR_NAME,
            "System log monitor",
            "system-log-monitors",
        )
        self._move_deprecated(
            "custom_plugin_monitor_config_paths",
            CUSTOM_PLUGIN_MONITOR_NAME,
            "Custom plugin monitor",
            "custom-plugin-monitors",
        )

    def set_node_name(self) -> None:
        """Set ``node_name`` from the override, then NODE_NAME, then the host name."""
        if self.hostname_override:
            self.node_name = self.hostname_override
            return
        self.node_name = os.environ.get("NODE_NAME", "")
        if self.node_name:
            return
        try:
            self.node_name = socket.gethostname()
        except OSError as err:
            raise OptionsError(f"Failed to get host name: {err}") from err


def parse_options(
    argv: Sequence[str] | None = None, problem_daemon_names: Iterable[str] = ()
) -> NodeProblemDetectorOptions:
    """Parse ``argv`` (default: the process arguments) into options."""
    options = NodeProblemDetectorOptions.create(problem_daemon_names)
    parser = argparse.ArgumentParser(prog="node-problem-detector", allow_abbrev=False)
    options.add_arguments(parser)
    namespace = parser.parse_args(argv)
    options.apply_arguments(namespace)
    return options