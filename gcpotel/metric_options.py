"""Options, constants and errors for the Cloud Monitoring metric exporter."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .resourcemapping import (
    SERVICE_INSTANCE_ID_KEY,
    SERVICE_NAME_KEY,
    SERVICE_NAMESPACE_KEY,
)

# Well-known resource label keys.
CLOUD_KEY_PROVIDER = "cloud.provider"
CLOUD_KEY_ACCOUNT_ID = "cloud.account.id"
CLOUD_KEY_REGION = "cloud.region"
CLOUD_KEY_ZONE = "cloud.availability_zone"

SERVICE_KEY_NAMESPACE = "service.namespace"
SERVICE_KEY_INSTANCE_ID = "service.instance.id"
SERVICE_KEY_NAME = "service.name"

HOST_TYPE = "host"
HOST_KEY_NAME = "host.name"
HOST_KEY_HOST_NAME = "host.hostname"
HOST_KEY_ID = "host.id"
HOST_KEY_TYPE = "host.type"

CONTAINER_KEY_NAME = "container.name"
CONTAINER_KEY_IMAGE_NAME = "container.image.name"
CONTAINER_KEY_IMAGE_TAG = "container.image.tag"

CLOUD_PROVIDER_AWS = "aws"
CLOUD_PROVIDER_GCP = "gcp"
CLOUD_PROVIDER_AZURE = "azure"

K8S = "k8s"
K8S_KEY_CLUSTER_NAME = "k8s.cluster.name"
K8S_KEY_NAMESPACE_NAME = "k8s.namespace.name"
K8S_KEY_POD_NAME = "k8s.pod.name"
K8S_KEY_DEPLOYMENT_NAME = "k8s.deployment.name"

# Monitored resource types.
K8S_CONTAINER = "k8s_container"
K8S_NODE = "k8s_node"
K8S_POD = "k8s_pod"
K8S_CLUSTER = "k8s_cluster"
GCE_INSTANCE = "gce_instance"
AWS_EC2_INSTANCE = "aws_ec2_instance"
GENERIC_TASK = "generic_task"

DEFAULT_DESCRIPTOR_PREFIX = "workload.googleapis.com/"

_VERSION = "0.35.2"

_DEFAULT_RESOURCE_KEYS = frozenset((SERVICE_NAME_KEY, SERVICE_NAMESPACE_KEY, SERVICE_INSTANCE_ID_KEY))
_NO_RESOURCE_KEYS: frozenset[str] = frozenset()


def version() -> str:
    """Return the release version of the metric exporter."""
    return _VERSION


class BlankProjectIdError(ValueError):
    """Raised when no project ID is configured."""

    def __init__(self) -> None:
        super().__init__("expecting a non-blank ProjectID")


class UnexpectedAggregationKindError(ValueError):
    """Raised for a metric aggregation the exporter does not handle."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"the metric kind is unexpected: {kind}")
        self.kind = kind


def default_resource_attributes_filter(key: str, value: Any) -> bool:
    """Keep only the service name, namespace and instance ID resource attributes."""
    return key in _DEFAULT_RESOURCE_KEYS


def no_attributes(key: str, value: Any) -> bool:
    """Reject every resource attribute: the set of kept keys is empty."""
    return key in _NO_RESOURCE_KEYS


@dataclass
class MetricOptions:
    """Settings for the metric exporter and its client."""

    project_id: str = ""
    compression: str = ""
    destination_project_quota: bool = False
    disable_create_metric_descriptors: bool = False
    metric_descriptor_type_formatter: Callable[[str], str] | None = None
    resource_attribute_filter: Callable[[str, Any], bool] = default_resource_attributes_filter
    monitoring_client_options: list[Any] = field(default_factory=list)

    def validate(self) -> None:
        """Raise if the options cannot be used to export."""
        if not self.project_id:
            raise BlankProjectIdError()

    def includes_resource_attribute(self, key: str, value: Any) -> bool:
        """Tell whether a resource attribute becomes a metric label."""
        return bool(self.resource_attribute_filter(key, value))

    def descriptor_type(self, metric_name: str) -> str:
        """Return the MetricDescriptor type for a metric."""
        if self.metric_descriptor_type_formatter is not None:
            return self.metric_descriptor_type_formatter(metric_name)
        return DEFAULT_DESCRIPTOR_PREFIX + metric_name