"""Data models for node identity and cluster node state."""

import re
from enum import Enum

from pydantic import BaseModel, Field, field_validator

REMOTE_HOST_ANNOTATION = "k3s-mgr.io/remote-host"

SERVER_LABELS = {
    "svccontroller.k3s.cattle.io/enablelb": "true",
}

WORKER_LABELS = {
    "node-role.kubernetes.io/role": "worker",
}

DNS_LABEL_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")


class NodeRole(str, Enum):
    """Role a node plays in the cluster."""

    SERVER = "server"
    WORKER = "worker"


def labels_for_role(role: NodeRole) -> dict[str, str]:
    """Return the membership labels every node of ``role`` receives."""
    if role == NodeRole.SERVER:
        return dict(SERVER_LABELS)
    return dict(WORKER_LABELS)


class NodeIdentity(BaseModel):
    """Identity allocated to a node before it is installed."""

    name: str
    role: NodeRole
    origin_host: str | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is a DNS label."""
        if len(v) > 63:
            raise ValueError("node name cannot exceed 63 characters")
        if not DNS_LABEL_PATTERN.match(v):
            raise ValueError(
                f"node name '{v}' must contain only lower-case alphanumeric characters "
                "and hyphens, and cannot start or end with a hyphen"
            )
        return v

    @property
    def remotely_managed(self) -> bool:
        """Whether the node was provisioned over ssh."""
        return bool(self.origin_host)


class ClusterNode(BaseModel):
    """Node as reported by the Kubernetes API."""

    name: str
    ready: bool
    roles: list[str] = Field(default_factory=list)
    version: str = ""
    remote_host: str = Field(default="", exclude=True)

    @classmethod
    def from_kubernetes(cls, node) -> "ClusterNode":
        """Build from a ``V1Node`` returned by the kubernetes client."""
        ready = False
        for condition in (node.status.conditions if node.status else None) or []:
            if condition.type == "Ready":
                ready = condition.status == "True"

        labels = node.metadata.labels or {}
        roles = set()
        for key, value in labels.items():
            if not key.startswith("node-role.kubernetes.io/"):
                continue
            # the worker membership label carries the role in its value
            if key == "node-role.kubernetes.io/role":
                roles.add(value)
            else:
                roles.add(key.split("/", 1)[1])

        version = ""
        if node.status and node.status.node_info:
            version = node.status.node_info.kubelet_version

        annotations = node.metadata.annotations or {}
        return cls(
            name=node.metadata.name,
            ready=ready,
            roles=sorted(roles),
            version=version,
            remote_host=annotations.get(REMOTE_HOST_ANNOTATION, ""),
        )

    def __str__(self) -> str:
        """Pipe-separated row used by the plain listing."""
        return f"{self.name}|{str(self.ready).lower()}|{','.join(self.roles)}|{self.version}"
