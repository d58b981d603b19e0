"""Core value types shared by custom plugin monitoring."""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


class Status(enum.IntEnum):
    """Outcome of a plugin run, taken from its exit code."""

    OK = 0
    NON_OK = 1
    UNKNOWN = 2


class ProblemType(str, enum.Enum):
    """Whether a problem is a one-off event or a lasting condition."""

    TEMPORARY = "temporary"
    PERMANENT = "permanent"


class ConditionStatus(str, enum.Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Severity(str, enum.Enum):
    INFO = "info"
    WARN = "warn"


@dataclass
class Condition:
    """A node condition maintained by a problem daemon."""

    type: str
    status: ConditionStatus = ConditionStatus.FALSE
    transition: datetime = ZERO_TIME
    reason: str = ""
    message: str = ""


@dataclass
class Event:
    """A single reported problem occurrence."""

    severity: Severity
    timestamp: datetime
    reason: str
    message: str


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string, got {value!r}")
    return value


@dataclass
class CustomRule:
    """How a plugin is invoked and how its result is interpreted."""

    type: ProblemType | None = None
    condition: str = ""
    reason: str = ""
    path: str = ""
    args: list[str] = field(default_factory=list)
    timeout_string: str | None = None
    timeout: float | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CustomRule:
        """Build a rule from its JSON form; ``timeout`` stays unparsed."""
        if not isinstance(data, Mapping):
            raise ValueError(f"rule must be an object, got {data!r}")
        raw_type = _string(data, "type")
        problem_type = ProblemType(raw_type) if raw_type else None
        args = data.get("args")
        if args is None:
            args = []
        if not isinstance(args, list) or not all(isinstance(a, str) for a in args):
            raise ValueError(f"field 'args' must be a list of strings, got {args!r}")
        timeout_string = data.get("timeout")
        if timeout_string is not None and not isinstance(timeout_string, str):
            raise ValueError(f"field 'timeout' must be a string, got {timeout_string!r}")
        return cls(
            type=problem_type,
            condition=_string(data, "condition"),
            reason=_string(data, "reason"),
            path=_string(data, "path"),
            args=list(args),
            timeout_string=timeout_string,
        )


@dataclass
class Result:
    """A plugin check result."""

    rule: CustomRule
    exit_status: Status
    message: str