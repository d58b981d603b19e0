"""Node condition wire types, API server URI overrides and an in-memory problem client."""

from __future__ import annotations

import json
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qs, urlsplit

from npdetect.plugintypes import ZERO_TIME, Condition, ConditionStatus

API_VERSION = "v1"

_TRUE_WORDS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_WORDS = frozenset({"0", "f", "F", "FALSE", "false", "False"})


def parse_bool(text: str) -> bool:
    """Parse a boolean the way command-line and query options spell it.

    Accepts 1, t, T, TRUE, true, True, 0, f, F, FALSE, false and False;
    anything else raises ValueError.
    """
    if text in _TRUE_WORDS:
        return True
    if text in _FALSE_WORDS:
        return False
    raise ValueError(f"invalid boolean value {text!r}")


@dataclass
class NodeCondition:
    """A node condition as the API server stores it."""

    type: str
    status: ConditionStatus
    last_heartbeat_time: datetime = ZERO_TIME
    last_transition_time: datetime = ZERO_TIME
    reason: str = ""
    message: str = ""


@dataclass
class ObjectReference:
    """Reference to the object events are recorded against."""

    kind: str
    name: str
    uid: str
    namespace: str = ""


@dataclass
class ConfigOverrides:
    """Cluster settings taken from an API server override URI."""

    server: str = ""
    insecure_skip_tls_verify: bool = False


def get_config_overrides(uri: str) -> ConfigOverrides:
    """Extract the server address and the ``insecure`` flag from ``uri``.

    The server is set only when the URI has both a scheme and a host.
    Raises ValueError when ``insecure`` is present but not a boolean.
    """
    parts = urlsplit(uri)
    overrides = ConfigOverrides()
    host = parts.netloc.rpartition("@")[2]
    if parts.scheme and host:
        overrides.server = f"{parts.scheme}://{host}"
    query = parse_qs(parts.query, keep_blank_values=True)
    insecure = query.get("insecure")
    if insecure:
        overrides.insecure_skip_tls_verify = parse_bool(insecure[0])
    return overrides


def _format_time(moment: datetime) -> str | None:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    utc = moment.astimezone(timezone.utc)
    if utc.replace(microsecond=0) == ZERO_TIME:
        return None
    return utc.strftime("%Y-%m-%dT%H:%M:%SZ")


def _condition_json(condition: NodeCondition) -> dict[str, Any]:
    status = condition.status
    data: dict[str, Any] = {
        "type": condition.type,
        "status": status.value if isinstance(status, ConditionStatus) else str(status),
        "lastHeartbeatTime": _format_time(condition.last_heartbeat_time),
        "lastTransitionTime": _format_time(condition.last_transition_time),
    }
    if condition.reason:
        data["reason"] = condition.reason
    if condition.message:
        data["message"] = condition.message
    return data


_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}


def _encode(value: Any) -> str:
    text = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return "".join(_HTML_ESCAPES.get(char, char) for char in text)


def generate_patch(conditions: Iterable[NodeCondition]) -> bytes:
    """Build the node status patch that sets ``conditions``."""
    raw = _encode([_condition_json(c) for c in conditions])
    return f'{{"status":{{"conditions":{raw}}}}}'.encode()


def node_reference(namespace: str, node_name: str) -> ObjectReference:
    """Reference to the node named ``node_name``, used as the event subject."""
    return ObjectReference(kind="Node", name=node_name, uid=node_name, namespace=namespace)


def to_node_condition(condition: Condition) -> NodeCondition:
    """Convert a problem daemon condition into its API form."""
    return NodeCondition(
        type=condition.type,
        status=condition.status,
        last_transition_time=condition.transition,
        reason=condition.reason,
        message=condition.message,
    )


class FakeProblemClient:
    """Problem client that keeps conditions and events in memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._conditions: dict[str, NodeCondition] = {}
        self._errors: dict[str, Exception] = {}
        self.events: list[str] = []

    def inject_error(self, name: str, error: Exception) -> None:
        """Make the method called ``name`` raise ``error`` from now on."""
        with self._lock:
            self._errors[name] = error

    def assert_conditions(self, expected: Iterable[NodeCondition]) -> None:
        """Raise AssertionError unless the stored conditions equal ``expected``."""
        wanted = {condition.type: condition for condition in expected}
        with self._lock:
            actual = dict(self._conditions)
        if wanted != actual:
            raise AssertionError(f"expected {wanted}, got {actual}")

    def set_conditions(self, conditions: Iterable[NodeCondition]) -> None:
        """Store ``conditions``, replacing earlier ones of the same type."""
        with self._lock:
            error = self._errors.get("set_conditions")
            if error is not None:
                raise error
            for condition in conditions:
                self._conditions[condition.type] = replace(condition)

    def get_conditions(self, condition_types: Sequence[str]) -> list[NodeCondition]:
        """Stored conditions of the given types, in the order asked for."""
        with self._lock:
            error = self._errors.get("get_conditions")
            if error is not None:
                raise error
            return [
                replace(self._conditions[t]) for t in condition_types if t in self._conditions
            ]

    def eventf(
        self, event_type: str, source: str, reason: str, message_fmt: str, *args: Any
    ) -> None:
        """Record an event as ``"<type> <reason> <message>"``."""
        message = message_fmt % args if args else message_fmt
        with self._lock:
            self.events.append(f"{event_type} {reason} {message}")

    def get_node(self) -> Any:
        """The fake holds no node object, so this always raises LookupError."""
        raise LookupError("the fake problem client holds no node object")