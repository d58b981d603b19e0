"""Turn custom plugin check results into node conditions and events."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Protocol

from npdetect.pluginconfig import ConfigError, CustomPluginConfig
from npdetect.plugintypes import (
    Condition,
    ConditionStatus,
    Event,
    ProblemType,
    Result,
    Severity,
    Status,
)

CUSTOM_PLUGIN_MONITOR_NAME = "custom-plugin-monitor"

log = logging.getLogger(__name__)


class ProblemMetrics(Protocol):
    """Receiver for problem gauges and counters."""

    def set_problem_gauge(self, condition_type: str, reason: str, active: bool) -> None: ...

    def increment_problem_counter(self, reason: str, count: int) -> None: ...


@dataclass
class MonitorStatus:
    """What a monitor reports: its source, new events and current conditions."""

    source: str
    events: list[Event] = field(default_factory=list)
    conditions: list[Condition] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def load_config(path: str) -> CustomPluginConfig:
    """Read, default and validate a custom plugin configuration file."""
    try:
        with open(path, encoding="utf-8") as handle:
            raw = handle.read()
    except OSError as err:
        raise ConfigError(f"Failed to read configuration file {path!r}: {err}") from err
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as err:
        raise ConfigError(f"Failed to unmarshal configuration file {path!r}: {err}") from err
    config = CustomPluginConfig.from_dict(data)
    config.apply_configuration()
    config.validate()
    return config


def to_condition_status(status: Status) -> ConditionStatus:
    """Map a plugin exit status to the status of the condition it drives."""
    if status == Status.OK:
        return ConditionStatus.FALSE
    if status == Status.NON_OK:
        return ConditionStatus.TRUE
    return ConditionStatus.UNKNOWN


def initial_conditions(defaults: Iterable[Condition]) -> list[Condition]:
    """Copies of the default conditions, all False and transitioned now."""
    now = _utc_now()
    return [replace(c, status=ConditionStatus.FALSE, transition=now) for c in defaults]


class CustomPluginMonitor:
    """Keeps the conditions of one custom plugin configuration up to date."""

    def __init__(
        self,
        config: CustomPluginConfig,
        *,
        config_path: str = "",
        metrics: ProblemMetrics | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.config = config
        self.config_path = config_path
        self.conditions: list[Condition] = []
        self._metrics = metrics
        self._clock = clock
        if self._metrics_enabled:
            self._initialize_problem_metrics()

    @classmethod
    def from_file(cls, path: str) -> CustomPluginMonitor:
        """Create a monitor from the configuration file at ``path``."""
        config = load_config(path)
        log.info("Finish parsing custom plugin monitor config file %s: %s", path, config)
        return cls(config, config_path=path)

    @property
    def _metrics_enabled(self) -> bool:
        return self._metrics is not None and bool(self.config.enable_metrics_reporting)

    def _initialize_problem_metrics(self) -> None:
        assert self._metrics is not None
        for rule in self.config.rules:
            if rule.type is ProblemType.PERMANENT:
                self._metrics.set_problem_gauge(rule.condition, rule.reason, False)
            self._metrics.increment_problem_counter(rule.reason, 0)

    def _snapshot(self) -> list[Condition]:
        return [replace(c) for c in self.conditions]

    def initialize_status(self) -> MonitorStatus:
        """Reset conditions to their defaults and return the initial status."""
        self.conditions = initial_conditions(self.config.default_conditions)
        log.info("Initialize condition generated: %s", self.conditions)
        return MonitorStatus(source=self.config.source, conditions=self._snapshot())

    def _default_for(self, condition_type: str) -> tuple[str, str]:
        for default in self.config.default_conditions:
            if default.type == condition_type:
                return default.reason, default.message
        return "", ""

    def _update_condition(
        self, condition: Condition, result: Result, timestamp: datetime
    ) -> Event | None:
        default_reason, default_message = self._default_for(result.rule.condition)
        status = to_condition_status(result.exit_status)
        message_based = bool(
            self.config.plugin_global_config.enable_message_change_based_condition_update
        )
        current = condition.status
        true = ConditionStatus.TRUE

        if current == true and status != true:
            new_reason = default_reason
            new_message = default_message if status == ConditionStatus.FALSE else result.message
        elif current != true and status == true:
            new_reason, new_message = result.rule.reason, result.message
        elif current != status:
            new_reason = default_reason
            new_message = default_message if status == ConditionStatus.FALSE else result.message
        elif current == true and (
            condition.reason != result.rule.reason
            or (message_based and condition.message != result.message)
        ):
            new_reason, new_message = result.rule.reason, result.message
        else:
            return None

        condition.transition = timestamp
        condition.status = status
        condition.reason = new_reason
        condition.message = new_message
        return Event(
            severity=Severity.INFO,
            timestamp=timestamp,
            reason=new_reason,
            message=new_message,
        )

    def generate_status(self, result: Result) -> MonitorStatus:
        """Apply a plugin result and return the resulting status."""
        timestamp = self._clock()
        active: list[Event] = []
        inactive: list[Event] = []
        rule = result.rule

        if rule.type is ProblemType.TEMPORARY:
            if result.exit_status >= Status.NON_OK:
                active.append(
                    Event(
                        severity=Severity.WARN,
                        timestamp=timestamp,
                        reason=rule.reason,
                        message=result.message,
                    )
                )
        else:
            condition = next((c for c in self.conditions if c.type == rule.condition), None)
            if condition is not None:
                event = self._update_condition(condition, result, timestamp)
                if event is not None:
                    if condition.status == ConditionStatus.TRUE:
                        active.append(event)
                    else:
                        inactive.append(event)

        if self._metrics_enabled:
            self._report_metrics(active)

        status = MonitorStatus(
            source=self.config.source,
            events=active + inactive,
            conditions=self._snapshot(),
        )
        if status.events:
            log.info("New status generated: %s", status)
        return status

    def _report_metrics(self, active: list[Event]) -> None:
        assert self._metrics is not None
        for event in active:
            try:
                self._metrics.increment_problem_counter(event.reason, 1)
            except Exception:
                log.exception("Failed to update problem counter metrics for %r", event.reason)
        for condition in self.conditions:
            try:
                self._metrics.set_problem_gauge(
                    condition.type, condition.reason, condition.status == ConditionStatus.TRUE
                )
            except Exception:
                log.exception(
                    "Failed to update problem gauge metrics for problem %r, reason %r",
                    condition.type,
                    condition.reason,
                )