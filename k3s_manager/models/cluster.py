"""Data models for cluster paths and add-ons."""

import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator


class K3sPaths(BaseModel):
    """Filesystem locations used by k3s and by this tool."""

    k3s_binary: Path = Path("/usr/local/bin/k3s")
    uninstall_script: str = "/usr/local/bin/k3s-uninstall.sh"
    kubeconfig: Path = Path("/etc/rancher/k3s/k3s.yaml")
    registry_config: Path = Path("/etc/rancher/k3s/registries.yaml")
    server_manifests_dir: Path = Path("/var/lib/rancher/k3s/server/manifests")
    remote_installer: str = "/tmp/k3s-installer.sh"
    remote_registry_config: str = "/etc/rancher/k3s/registries.yaml"

    def is_installed(self) -> bool:
        """Check whether k3s is installed on the local host."""
        return self.k3s_binary.exists()


class Manifest(BaseModel):
    """A remote Kubernetes manifest installed during bootstrap."""

    name: str
    version: str
    url: str


class HelmChart(BaseModel):
    """A chart installed through the k3s helm controller."""

    release_name: str
    chart: str
    repo_url: str
    namespace: str
    version: str
    values: dict[str, Any] = Field(default_factory=dict)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version looks like a chart version."""
        if not re.match(r"^v?\d+\.\d+\.\d+$", v):
            raise ValueError(f"chart version '{v}' must look like 1.2.3 or v1.2.3")
        return v

    def to_resource(self) -> dict[str, Any]:
        """Convert to a ``helm.cattle.io/v1`` HelmChart object."""
        import yaml

        spec: dict[str, Any] = {
            "chart": self.chart,
            "repo": self.repo_url,
            "version": self.version,
            "targetNamespace": self.namespace,
            "createNamespace": True,
        }
        if self.values:
            spec["valuesContent"] = yaml.safe_dump(self.values, default_flow_style=False)

        return {
            "apiVersion": "helm.cattle.io/v1",
            "kind": "HelmChart",
            "metadata": {"name": self.release_name, "namespace": "kube-system"},
            "spec": spec,
        }


KUBERNETES_MANIFESTS = [
    Manifest(
        name="system-upgrader",
        version="0.13.2",
        url="https://github.com/rancher/system-upgrade-controller/releases/download/v0.13.2/system-upgrade-controller.yaml",
    ),
]

HELM_CHARTS = [
    HelmChart(
        release_name="cert-manager",
        chart="cert-manager",
        repo_url="https://charts.jetstack.io",
        namespace="cert-manager",
        version="v1.13.3",
        values={"installCRDs": True},
    ),
    HelmChart(
        release_name="longhorn",
        chart="longhorn",
        repo_url="https://charts.longhorn.io",
        namespace="longhorn-system",
        version="1.5.3",
    ),
]
