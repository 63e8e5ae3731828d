"""Mapping of OpenTelemetry resource attributes onto monitored resources."""

from __future__ import annotations

import base64
import json
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, NamedTuple

PROJECT_ID_ATTRIBUTE_KEY = "gcp.project.id"

# Semantic convention keys used by the mapping.
CLOUD_PLATFORM_KEY = "cloud.platform"
CLOUD_AVAILABILITY_ZONE_KEY = "cloud.availability_zone"
CLOUD_REGION_KEY = "cloud.region"
CLOUD_ACCOUNT_ID_KEY = "cloud.account.id"
HOST_ID_KEY = "host.id"
HOST_NAME_KEY = "host.name"
K8S_CLUSTER_NAME_KEY = "k8s.cluster.name"
K8S_NAMESPACE_NAME_KEY = "k8s.namespace.name"
K8S_POD_NAME_KEY = "k8s.pod.name"
K8S_CONTAINER_NAME_KEY = "k8s.container.name"
K8S_NODE_NAME_KEY = "k8s.node.name"
FAAS_NAME_KEY = "faas.name"
FAAS_VERSION_KEY = "faas.version"
FAAS_ID_KEY = "faas.id"
SERVICE_NAME_KEY = "service.name"
SERVICE_NAMESPACE_KEY = "service.namespace"
SERVICE_INSTANCE_ID_KEY = "service.instance.id"

CLOUD_PLATFORM_GCP_COMPUTE_ENGINE = "gcp_compute_engine"
CLOUD_PLATFORM_GCP_KUBERNETES_ENGINE = "gcp_kubernetes_engine"
CLOUD_PLATFORM_GCP_APP_ENGINE = "gcp_app_engine"
CLOUD_PLATFORM_AWS_EC2 = "aws_ec2"

GCE_INSTANCE = "gce_instance"
K8S_CONTAINER = "k8s_container"
K8S_POD = "k8s_pod"
K8S_NODE = "k8s_node"
K8S_CLUSTER = "k8s_cluster"
GAE_INSTANCE = "gae_instance"
AWS_EC2_INSTANCE = "aws_ec2_instance"
GENERIC_TASK = "generic_task"
GENERIC_NODE = "generic_node"


class _LabelMapping(NamedTuple):
    otel_keys: tuple[str, ...]
    fallback: str = ""


_LOCATION_KEYS = (CLOUD_AVAILABILITY_ZONE_KEY, CLOUD_REGION_KEY)

_MAPPINGS: dict[str, dict[str, _LabelMapping]] = {
    GCE_INSTANCE: {
        "zone": _LabelMapping((CLOUD_AVAILABILITY_ZONE_KEY,)),
        "instance_id": _LabelMapping((HOST_ID_KEY,)),
    },
    K8S_CONTAINER: {
        "location": _LabelMapping(_LOCATION_KEYS),
        "cluster_name": _LabelMapping((K8S_CLUSTER_NAME_KEY,)),
        "namespace_name": _LabelMapping((K8S_NAMESPACE_NAME_KEY,)),
        "pod_name": _LabelMapping((K8S_POD_NAME_KEY,)),
        "container_name": _LabelMapping((K8S_CONTAINER_NAME_KEY,)),
    },
    K8S_POD: {
        "location": _LabelMapping(_LOCATION_KEYS),
        "cluster_name": _LabelMapping((K8S_CLUSTER_NAME_KEY,)),
        "namespace_name": _LabelMapping((K8S_NAMESPACE_NAME_KEY,)),
        "pod_name": _LabelMapping((K8S_POD_NAME_KEY,)),
    },
    K8S_NODE: {
        "location": _LabelMapping(_LOCATION_KEYS),
        "cluster_name": _LabelMapping((K8S_CLUSTER_NAME_KEY,)),
        "node_name": _LabelMapping((K8S_NODE_NAME_KEY,)),
    },
    K8S_CLUSTER: {
        "location": _LabelMapping(_LOCATION_KEYS),
        "cluster_name": _LabelMapping((K8S_CLUSTER_NAME_KEY,)),
    },
    GAE_INSTANCE: {
        "location": _LabelMapping(_LOCATION_KEYS),
        "module_id": _LabelMapping((FAAS_NAME_KEY,)),
        "version_id": _LabelMapping((FAAS_VERSION_KEY,)),
        "instance_id": _LabelMapping((FAAS_ID_KEY,)),
    },
    AWS_EC2_INSTANCE: {
        "instance_id": _LabelMapping((HOST_ID_KEY,)),
        "region": _LabelMapping(_LOCATION_KEYS),
        "aws_account": _LabelMapping((CLOUD_ACCOUNT_ID_KEY,)),
    },
    GENERIC_TASK: {
        "location": _LabelMapping(_LOCATION_KEYS, "global"),
        "namespace": _LabelMapping((SERVICE_NAMESPACE_KEY,)),
        "job": _LabelMapping((SERVICE_NAME_KEY, FAAS_NAME_KEY)),
        "task_id": _LabelMapping((SERVICE_INSTANCE_ID_KEY, FAAS_ID_KEY)),
    },
    GENERIC_NODE: {
        "location": _LabelMapping(_LOCATION_KEYS, "global"),
        "namespace": _LabelMapping((SERVICE_NAMESPACE_KEY,)),
        "node_id": _LabelMapping((HOST_ID_KEY, HOST_NAME_KEY)),
    },
}


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    text = format(Decimal(repr(value)), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def attribute_as_string(value: Any) -> str:
    """Render an attribute value as its string form."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return json.dumps(value, separators=(",", ":"), default=str)


@dataclass
class MonitoredResource:
    """A monitored resource type together with its labels."""

    type: str
    labels: dict[str, str] = field(default_factory=dict)


def _create(resource_type: str, attrs: Mapping[str, Any]) -> MonitoredResource:
    labels: dict[str, str] = {}
    for label, mapping in _MAPPINGS[resource_type].items():
        value = next(
            (
                text
                for key in mapping.otel_keys
                if key in attrs and (text := attribute_as_string(attrs[key]))
            ),
            "",
        )
        labels[label] = value or mapping.fallback
    return MonitoredResource(type=resource_type, labels=labels)


def resource_attributes_to_monitored_resource(attrs: Mapping[str, Any]) -> MonitoredResource:
    """Choose a monitored resource type and its labels from resource attributes."""
    platform = attribute_as_string(attrs.get(CLOUD_PLATFORM_KEY))
    if platform == CLOUD_PLATFORM_GCP_COMPUTE_ENGINE:
        return _create(GCE_INSTANCE, attrs)
    if platform == CLOUD_PLATFORM_GCP_KUBERNETES_ENGINE:
        if K8S_CONTAINER_NAME_KEY in attrs:
            return _create(K8S_CONTAINER, attrs)
        if K8S_POD_NAME_KEY in attrs:
            return _create(K8S_POD, attrs)
        if K8S_NODE_NAME_KEY in attrs:
            return _create(K8S_NODE, attrs)
        return _create(K8S_CLUSTER, attrs)
    if platform == CLOUD_PLATFORM_GCP_APP_ENGINE:
        return _create(GAE_INSTANCE, attrs)
    if platform == CLOUD_PLATFORM_AWS_EC2:
        return _create(AWS_EC2_INSTANCE, attrs)

    has_service = SERVICE_NAME_KEY in attrs and SERVICE_INSTANCE_ID_KEY in attrs
    has_faas = FAAS_ID_KEY in attrs and FAAS_NAME_KEY in attrs
    if has_service or has_faas:
        return _create(GENERIC_TASK, attrs)
    return _create(GENERIC_NODE, attrs)