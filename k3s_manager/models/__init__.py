"""Data models for nodes, paths and add-ons."""

from k3s_manager.models.cluster import (
    HELM_CHARTS,
    KUBERNETES_MANIFESTS,
    HelmChart,
    K3sPaths,
    Manifest,
)
from k3s_manager.models.node import (
    REMOTE_HOST_ANNOTATION,
    ClusterNode,
    NodeIdentity,
    NodeRole,
    labels_for_role,
)

__all__ = [
    "ClusterNode",
    "HELM_CHARTS",
    "HelmChart",
    "K3sPaths",
    "KUBERNETES_MANIFESTS",
    "Manifest",
    "NodeIdentity",
    "NodeRole",
    "REMOTE_HOST_ANNOTATION",
    "labels_for_role",
]
