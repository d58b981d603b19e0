"""Registry of pluggable exporters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass
class ExporterHandler:
    """Factory for an exporter together with the options it is built from.

    ``create_exporter`` receives ``options`` and returns an exporter, or
    ``None`` when the exporter is not configured.
    """

    create_exporter: Callable[[Any], Any]
    options: Any = None


class ExporterRegistry:
    """Maps exporter type names to their handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, ExporterHandler] = {}

    def register(self, exporter_type: str, handler: ExporterHandler) -> None:
        """Register ``handler`` under ``exporter_type``, replacing any earlier one."""
        self._handlers[exporter_type] = handler

    def names(self) -> list[str]:
        """All registered exporter types."""
        return list(self._handlers)

    def handler(self, exporter_type: str) -> ExporterHandler:
        """The handler for ``exporter_type``; LookupError if none is registered."""
        try:
            return self._handlers[exporter_type]
        except KeyError:
            raise LookupError(f"Exporter handler for {exporter_type} does not exist") from None

    def create_exporters(self) -> list[Any]:
        """Create every configured exporter, skipping those that return None."""
        created = (h.create_exporter(h.options) for h in self._handlers.values())
        return [exporter for exporter in created if exporter is not None]


default_registry = ExporterRegistry()