import pytest

from npdetect.stackdriver import (
    DEFAULT_ENDPOINT,
    GCEMetadata,
    StackdriverExporterConfig,
)


def _metadata():
    return GCEMetadata(
        project_id="some-gcp-project",
        zone="us-central1-a",
        instance_id="56781234",
        instance_name="some-gce-instance",
    )


CASES = {
    "normal": lambda: (
        StackdriverExporterConfig(
            export_period="60s",
            metadata_fetch_timeout="600s",
            metadata_fetch_interval="10s",
            api_endpoint="monitoring.googleapis.com:443",
            gce_metadata=_metadata(),
        ),
        StackdriverExporterConfig(
            export_period="60s",
            metadata_fetch_timeout="600s",
            metadata_fetch_interval="10s",
            api_endpoint=DEFAULT_ENDPOINT,
            gce_metadata=_metadata(),
        ),
    ),
    "staging API endpoint": lambda: (
        StackdriverExporterConfig(
            export_period="60s",
            metadata_fetch_timeout="600s",
            metadata_fetch_interval="10s",
            api_endpoint="staging-monitoring.sandbox.googleapis.com:443",
            gce_metadata=_metadata(),
        ),
        StackdriverExporterConfig(
            export_period="60s",
            metadata_fetch_timeout="600s",
            metadata_fetch_interval="10s",
            api_endpoint="staging-monitoring.sandbox.googleapis.com:443",
            gce_metadata=_metadata(),
        ),
    ),
    "empty": lambda: (
        StackdriverExporterConfig(),
        StackdriverExporterConfig(
            export_period="1m0s",
            metadata_fetch_timeout="10m0s",
            metadata_fetch_interval="10s",
            api_endpoint="monitoring.googleapis.com:443",
            gce_metadata=GCEMetadata(),
        ),
    ),
}


@pytest.mark.parametrize("name", list(CASES))
def test_apply_configuration(name):
    original, wanted = CASES[name]()
    StackdriverExporterConfig.apply_configuration(original)
    assert original == wanted


def test_has_missing_field():
    assert _metadata().has_missing_field() is False
    assert GCEMetadata().has_missing_field() is True
    partial = _metadata()
    partial.zone = ""
    assert partial.has_missing_field() is True


def test_populate_fills_only_missing_fields():
    metadata = GCEMetadata(project_id="some-gcp-project", instance_name="some-gce-instance")
    requested = []

    def fetch(name):
        requested.append(name)
        return {"zone": "us-central1-a", "instance_id": "56781234"}[name]

    metadata.populate(fetch)
    assert metadata == _metadata()
    assert requested == ["zone", "instance_id"]
    assert metadata.has_missing_field() is False


def test_populate_stops_on_error():
    metadata = GCEMetadata()

    def fetch(name):
        if name == "instance_id":
            raise ConnectionError("metadata server unreachable")
        return f"value-of-{name}"

    with pytest.raises(ConnectionError):
        metadata.populate(fetch)
    assert metadata.project_id == "value-of-project_id"
    assert metadata.zone == "value-of-zone"
    assert metadata.instance_id == ""
    assert metadata.instance_name == ""


def test_from_dict():
    config = StackdriverExporterConfig.from_dict(
        {
            "exportPeriod": "60s",
            "apiEndpoint": "staging-monitoring.sandbox.googleapis.com:443",
            "gceMetadata": {
                "projectID": "some-gcp-project",
                "zone": "us-central1-a",
                "instanceID": "56781234",
                "instanceName": "some-gce-instance",
            },
            "panicOnMetadataFetchFailure": True,
            "customMetricPrefix": "custom.googleapis.com/npd",
        }
    )
    assert config.gce_metadata == _metadata()
    assert config.panic_on_metadata_fetch_failure is True
    assert config.custom_metric_prefix == "custom.googleapis.com/npd"
    config.apply_configuration()
    assert config.export_period == "60s"
    assert config.metadata_fetch_timeout == "10m0s"
    assert config.api_endpoint == "staging-monitoring.sandbox.googleapis.com:443"


@pytest.mark.parametrize(
    "document",
    [{"exportPeriod": 60}, {"gceMetadata": "x"}, {"panicOnMetadataFetchFailure": "yes"}, []],
)
def test_from_dict_rejects_bad_documents(document):
    with pytest.raises(ValueError):
        StackdriverExporterConfig.from_dict(document)