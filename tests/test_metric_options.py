import pytest

from gcpotel.metric_options import (
    BlankProjectIdError,
    MetricOptions,
    UnexpectedAggregationKindError,
    default_resource_attributes_filter,
    no_attributes,
    version,
)


def test_version_is_pinned():
    assert version() == "0.35.2"


def test_blank_project_id_rejected():
    with pytest.raises(BlankProjectIdError, match="expecting a non-blank ProjectID"):
        MetricOptions().validate()


def test_project_id_accepted():
    options = MetricOptions(project_id="my-project")
    options.validate()
    assert options.project_id == "my-project"


def test_unexpected_aggregation_kind_message():
    err = UnexpectedAggregationKindError("histogram")
    assert str(err) == "the metric kind is unexpected: histogram"
    assert err.kind == "histogram"


@pytest.mark.parametrize(
    "key, expected",
    [
        ("service.name", True),
        ("service.namespace", True),
        ("service.instance.id", True),
        ("host.name", False),
        ("cloud.region", False),
    ],
)
def test_default_filter(key, expected):
    assert default_resource_attributes_filter(key, "v") is expected
    assert MetricOptions().includes_resource_attribute(key, "v") is expected


@pytest.mark.parametrize("key", ["service.name", "host.name", "anything"])
def test_no_attributes_rejects_everything(key):
    assert no_attributes(key, "v") is False
    assert MetricOptions(resource_attribute_filter=no_attributes).includes_resource_attribute(
        key, "v"
    ) is False


def test_default_descriptor_type():
    assert MetricOptions().descriptor_type("requests") == "workload.googleapis.com/requests"


def test_custom_descriptor_formatter():
    options = MetricOptions(metric_descriptor_type_formatter=lambda name: f"custom/{name}")
    assert options.descriptor_type("latency") == "custom/latency"


def test_defaults_are_off():
    options = MetricOptions()
    assert (options.destination_project_quota, options.disable_create_metric_descriptors) == (
        False,
        False,
    )
    assert options.monitoring_client_options == []
    assert options.compression == ""