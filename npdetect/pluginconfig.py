"""Configuration of the custom plugin monitor: defaults and validation."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from npdetect.duration import format_duration, parse_duration
from npdetect.plugintypes import (
    ZERO_TIME,
    Condition,
    ConditionStatus,
    CustomRule,
    ProblemType,
)

DEFAULT_GLOBAL_TIMEOUT = 5.0
DEFAULT_GLOBAL_TIMEOUT_STRING = format_duration(DEFAULT_GLOBAL_TIMEOUT)
DEFAULT_INVOKE_INTERVAL = 30.0
DEFAULT_INVOKE_INTERVAL_STRING = format_duration(DEFAULT_INVOKE_INTERVAL)
DEFAULT_MAX_OUTPUT_LENGTH = 80
DEFAULT_CONCURRENCY = 3
DEFAULT_MESSAGE_CHANGE_BASED_CONDITION_UPDATE = False
DEFAULT_ENABLE_METRICS_REPORTING = True
DEFAULT_SKIP_INITIAL_STATUS = False

CUSTOM_PLUGIN_NAME = "custom"


class ConfigError(ValueError):
    """Raised when a custom plugin configuration is malformed or invalid."""


@dataclass
class PluginGlobalConfig:
    """Settings shared by all rules of one plugin monitor."""

    invoke_interval_string: str | None = None
    timeout_string: str | None = None
    invoke_interval: float | None = None
    timeout: float | None = None
    max_output_length: int | None = None
    concurrency: int | None = None
    enable_message_change_based_condition_update: bool | None = None
    skip_initial_status: bool | None = None


def _optional(data: Mapping[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) and kind is not bool:
        raise ConfigError(f"field {key!r} must be {kind.__name__}, got {value!r}")
    if not isinstance(value, kind):
        raise ConfigError(f"field {key!r} must be {kind.__name__}, got {value!r}")
    return value


def _mapping(value: Any, what: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{what} must be an object, got {value!r}")
    return value


def _condition_from_dict(data: Any) -> Condition:
    data = _mapping(data, "condition")
    raw_status = _optional(data, "status", str)
    raw_transition = _optional(data, "transition", str)
    try:
        status = ConditionStatus(raw_status) if raw_status else ConditionStatus.FALSE
        transition = (
            datetime.fromisoformat(raw_transition.replace("Z", "+00:00"))
            if raw_transition
            else ZERO_TIME
        )
    except ValueError as err:
        raise ConfigError(f"invalid condition {dict(data)!r}: {err}") from err
    return Condition(
        type=_optional(data, "type", str) or "",
        status=status,
        transition=transition,
        reason=_optional(data, "reason", str) or "",
        message=_optional(data, "message", str) or "",
    )


@dataclass
class CustomPluginConfig:
    """Configuration of one custom plugin monitor."""

    plugin: str = ""
    plugin_global_config: PluginGlobalConfig = field(default_factory=PluginGlobalConfig)
    source: str = ""
    default_conditions: list[Condition] = field(default_factory=list)
    rules: list[CustomRule] = field(default_factory=list)
    enable_metrics_reporting: bool | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CustomPluginConfig:
        """Build a configuration from its decoded JSON form."""
        data = _mapping(data, "custom plugin configuration")
        raw_global = _mapping(data.get("pluginConfig"), "pluginConfig")
        global_config = PluginGlobalConfig(
            invoke_interval_string=_optional(raw_global, "invoke_interval", str),
            timeout_string=_optional(raw_global, "timeout", str),
            max_output_length=_optional(raw_global, "max_output_length", int),
            concurrency=_optional(raw_global, "concurrency", int),
            enable_message_change_based_condition_update=_optional(
                raw_global, "enable_message_change_based_condition_update", bool
            ),
            skip_initial_status=_optional(raw_global, "skip_initial_status", bool),
        )
        raw_conditions = _optional(data, "conditions", list) or []
        raw_rules = _optional(data, "rules", list) or []
        try:
            rules = [CustomRule.from_dict(rule) for rule in raw_rules]
        except ConfigError:
            raise
        except ValueError as err:
            raise ConfigError(str(err)) from err
        return cls(
            plugin=_optional(data, "plugin", str) or "",
            plugin_global_config=global_config,
            source=_optional(data, "source", str) or "",
            default_conditions=[_condition_from_dict(c) for c in raw_conditions],
            rules=rules,
            enable_metrics_reporting=_optional(data, "metricsReporting", bool),
        )

    def apply_configuration(self) -> None:
        """Fill in defaults and parse the duration strings."""
        gc = self.plugin_global_config
        if gc.timeout_string is None:
            gc.timeout_string = DEFAULT_GLOBAL_TIMEOUT_STRING
        try:
            gc.timeout = parse_duration(gc.timeout_string)
        except ValueError as err:
            raise ConfigError(
                f"error in parsing global timeout {gc.timeout_string!r}: {err}"
            ) from err

        if gc.invoke_interval_string is None:
            gc.invoke_interval_string = DEFAULT_INVOKE_INTERVAL_STRING
        try:
            gc.invoke_interval = parse_duration(gc.invoke_interval_string)
        except ValueError as err:
            raise ConfigError(
                f"error in parsing invoke interval {gc.invoke_interval_string!r}: {err}"
            ) from err

        if gc.max_output_length is None:
            gc.max_output_length = DEFAULT_MAX_OUTPUT_LENGTH
        if gc.concurrency is None:
            gc.concurrency = DEFAULT_CONCURRENCY
        if gc.enable_message_change_based_condition_update is None:
            gc.enable_message_change_based_condition_update = (
                DEFAULT_MESSAGE_CHANGE_BASED_CONDITION_UPDATE
            )
        if gc.skip_initial_status is None:
            gc.skip_initial_status = DEFAULT_SKIP_INITIAL_STATUS

        for rule in self.rules:
            if rule.timeout_string is not None:
                try:
                    rule.timeout = parse_duration(rule.timeout_string)
                except ValueError as err:
                    raise ConfigError(f"error in parsing rule timeout {rule}: {err}") from err

        if self.enable_metrics_reporting is None:
            self.enable_metrics_reporting = DEFAULT_ENABLE_METRICS_REPORTING

    def validate(self) -> None:
        """Raise ConfigError if the configuration cannot be used."""
        if self.plugin != CUSTOM_PLUGIN_NAME:
            raise ConfigError(
                f'NPD does not support "{self.plugin}" plugin for now. Only support "custom"'
            )

        global_timeout = self.plugin_global_config.timeout
        for rule in self.rules:
            if rule.timeout is None:
                continue
            if global_timeout is None:
                raise ConfigError("global timeout is not set; apply the configuration first")
            if rule.timeout > global_timeout:
                raise ConfigError(
                    "plugin timeout is greater than global timeout. "
                    f"Rule: {rule}. Global timeout: {format_duration(global_timeout)}"
                )

        for rule in self.rules:
            if not os.path.exists(rule.path):
                raise ConfigError(f"rule path {rule.path!r} does not exist. Rule: {rule}")

        known = {condition.type for condition in self.default_conditions}
        for rule in self.rules:
            if rule.type is ProblemType.PERMANENT and rule.condition not in known:
                raise ConfigError(
                    f"Permanent problem {rule.condition} does not have preset default condition."
                )