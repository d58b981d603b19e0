"""Stackdriver exporter configuration and GCE instance metadata."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Callable

from npdetect.duration import format_duration

DEFAULT_EXPORT_PERIOD = format_duration(60)
DEFAULT_ENDPOINT = "monitoring.googleapis.com:443"
DEFAULT_METADATA_FETCH_TIMEOUT = format_duration(600)
DEFAULT_METADATA_FETCH_INTERVAL = format_duration(10)


def _get(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} must be {kind.__name__}, got {value!r}")
    return value


@dataclass
class GCEMetadata:
    """Identity of the GCE instance metrics are reported for."""

    project_id: str = ""
    zone: str = ""
    instance_id: str = ""
    instance_name: str = ""

    def has_missing_field(self) -> bool:
        return not all(getattr(self, f.name) for f in fields(self))

    def populate(self, fetch: Callable[[str], str]) -> None:
        """Fill every empty field with ``fetch(field_name)``.

        Fields are fetched in declaration order; an error from ``fetch``
        propagates and leaves the remaining fields untouched.
        """
        for f in fields(self):
            if not getattr(self, f.name):
                setattr(self, f.name, fetch(f.name))


@dataclass
class StackdriverExporterConfig:
    """Configuration of the Stackdriver exporter."""

    export_period: str = ""
    api_endpoint: str = ""
    gce_metadata: GCEMetadata = field(default_factory=GCEMetadata)
    metadata_fetch_timeout: str = ""
    metadata_fetch_interval: str = ""
    panic_on_metadata_fetch_failure: bool = False
    custom_metric_prefix: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StackdriverExporterConfig:
        """Build a configuration from its decoded JSON form."""
        if not isinstance(data, Mapping):
            raise ValueError(f"stackdriver configuration must be an object, got {data!r}")
        raw_metadata = _get(data, "gceMetadata", Mapping, {})
        metadata = GCEMetadata(
            project_id=_get(raw_metadata, "projectID", str, ""),
            zone=_get(raw_metadata, "zone", str, ""),
            instance_id=_get(raw_metadata, "instanceID", str, ""),
            instance_name=_get(raw_metadata, "instanceName", str, ""),
        )
        return cls(
            export_period=_get(data, "exportPeriod", str, ""),
            api_endpoint=_get(data, "apiEndpoint", str, ""),
            gce_metadata=metadata,
            metadata_fetch_timeout=_get(data, "metadataFetchTimeout", str, ""),
            metadata_fetch_interval=_get(data, "metadataFetchInterval", str, ""),
            panic_on_metadata_fetch_failure=_get(data, "panicOnMetadataFetchFailure", bool, False),
            custom_metric_prefix=_get(data, "customMetricPrefix", str, ""),
        )

    def apply_configuration(self) -> None:
        """Fill in defaults for unset fields."""
        if not self.export_period:
            self.export_period = DEFAULT_EXPORT_PERIOD
        if not self.metadata_fetch_timeout:
            self.metadata_fetch_timeout = DEFAULT_METADATA_FETCH_TIMEOUT
        if not self.metadata_fetch_interval:
            self.metadata_fetch_interval = DEFAULT_METADATA_FETCH_INTERVAL
        if not self.api_endpoint:
            self.api_endpoint = DEFAULT_ENDPOINT