import pytest

from gcpotel.resourcemapping import (
    MonitoredResource,
    attribute_as_string,
    resource_attributes_to_monitored_resource,
)


def test_gce_instance():
    mr = resource_attributes_to_monitored_resource(
        {
            "cloud.platform": "gcp_compute_engine",
            "cloud.availability_zone": "us-central1-a",
            "host.id": "host-1",
        }
    )
    assert mr == MonitoredResource(
        type="gce_instance", labels={"zone": "us-central1-a", "instance_id": "host-1"}
    )


@pytest.mark.parametrize(
    "extra, expected_type",
    [
        ({"k8s.container.name": "c", "k8s.pod.name": "p", "k8s.node.name": "n"}, "k8s_container"),
        ({"k8s.pod.name": "p", "k8s.node.name": "n"}, "k8s_pod"),
        ({"k8s.node.name": "n"}, "k8s_node"),
        ({}, "k8s_cluster"),
    ],
)
def test_kubernetes_most_specific_type(extra, expected_type):
    attrs = {"cloud.platform": "gcp_kubernetes_engine", "k8s.cluster.name": "cl"}
    attrs.update(extra)
    mr = resource_attributes_to_monitored_resource(attrs)
    assert mr.type == expected_type
    assert mr.labels["cluster_name"] == "cl"


def test_k8s_container_labels():
    mr = resource_attributes_to_monitored_resource(
        {
            "cloud.platform": "gcp_kubernetes_engine",
            "cloud.region": "europe-west1",
            "k8s.cluster.name": "cl",
            "k8s.namespace.name": "ns",
            "k8s.pod.name": "pod",
            "k8s.container.name": "ctr",
        }
    )
    assert mr.labels == {
        "location": "europe-west1",
        "cluster_name": "cl",
        "namespace_name": "ns",
        "pod_name": "pod",
        "container_name": "ctr",
    }


def test_location_skips_empty_zone():
    mr = resource_attributes_to_monitored_resource(
        {
            "cloud.platform": "gcp_kubernetes_engine",
            "cloud.availability_zone": "",
            "cloud.region": "asia-east1",
        }
    )
    assert mr.labels["location"] == "asia-east1"


def test_zone_preferred_over_region():
    mr = resource_attributes_to_monitored_resource(
        {
            "cloud.platform": "gcp_app_engine",
            "cloud.availability_zone": "zone-a",
            "cloud.region": "region-a",
            "faas.name": "mod",
            "faas.version": "v1",
            "faas.id": "inst",
        }
    )
    assert mr.type == "gae_instance"
    assert mr.labels == {
        "location": "zone-a",
        "module_id": "mod",
        "version_id": "v1",
        "instance_id": "inst",
    }


def test_aws_ec2():
    mr = resource_attributes_to_monitored_resource(
        {
            "cloud.platform": "aws_ec2",
            "host.id": "i-1",
            "cloud.region": "us-east-1",
            "cloud.account.id": "acct",
        }
    )
    assert mr.type == "aws_ec2_instance"
    assert mr.labels == {"instance_id": "i-1", "region": "us-east-1", "aws_account": "acct"}


def test_empty_attributes_fall_back_to_generic_node():
    mr = resource_attributes_to_monitored_resource({})
    assert mr.type == "generic_node"
    assert mr.labels == {"location": "global", "namespace": "", "node_id": ""}


def test_generic_task_with_service():
    mr = resource_attributes_to_monitored_resource(
        {"service.name": "svc", "service.instance.id": "id1", "service.namespace": "ns"}
    )
    assert mr.type == "generic_task"
    assert mr.labels == {"location": "global", "namespace": "ns", "job": "svc", "task_id": "id1"}


def test_generic_task_with_faas():
    mr = resource_attributes_to_monitored_resource({"faas.name": "fn", "faas.id": "fid"})
    assert mr.type == "generic_task"
    assert mr.labels["job"] == "fn"
    assert mr.labels["task_id"] == "fid"


def test_service_name_alone_is_generic_node():
    mr = resource_attributes_to_monitored_resource({"service.name": "svc", "host.name": "h"})
    assert mr.type == "generic_node"
    assert mr.labels["node_id"] == "h"


def test_non_string_values_are_stringified():
    mr = resource_attributes_to_monitored_resource(
        {"cloud.platform": "gcp_compute_engine", "host.id": 123}
    )
    assert mr.labels["instance_id"] == str(123)


def test_attribute_as_string_bool():
    assert attribute_as_string(True) == "true"
    assert attribute_as_string(None) == ""