"""k3s installer download, version parsing and flag sets."""

import os
import tempfile
from pathlib import Path

import requests

from k3s_manager.exceptions import TransportError
from k3s_manager.logging_config import get_logger
from k3s_manager.models.node import NodeRole

logger = get_logger(__name__)

INSTALLER_URL = "https://get.k3s.io"
DOWNLOAD_TIMEOUT = 60
API_SERVER_PORT = 6443
TAINT_CRITICAL_ADDONS_ONLY = "CriticalAddonsOnly=true:NoSchedule"

DEPENDENCIES = ["ca-certificates", "curl", "open-iscsi", "nfs-common", "wireguard"]

APT_UPDATE_ARGS = ["update"]
APT_INSTALL_ARGS = ["-y", "install", *DEPENDENCIES]

# Flags shared by every control-plane node, whether bootstrapped or joined
CONTROL_PLANE_FLAGS = [
    "--etcd-expose-metrics",
    "--kube-controller-manager-arg", "bind-address=0.0.0.0",
    "--kube-proxy-arg", "metrics-bind-address=0.0.0.0",
    "--kube-scheduler-arg", "bind-address=0.0.0.0",
    "--kube-controller-manager-arg", "terminated-pod-gc-threshold=10",
    "--write-kubeconfig-mode", "0644",
]  # fmt: skip

WORKER_FLAGS = [
    "--disable-etcd",
    "--disable-apiserver",
    "--disable-controller-manager",
    "--disable-scheduler",
    "--kube-proxy-arg", "metrics-bind-address=0.0.0.0",
]  # fmt: skip


def download_installer(url: str = INSTALLER_URL, timeout: int = DOWNLOAD_TIMEOUT) -> Path:
    """Download the installer script into a private executable temp file.

    The caller owns the returned file and must remove it.

    Raises:
        TransportError: If the download fails, returns a status other than
            200, or has an empty body
    """
    logger.debug(f"Downloading k3s installer from {url}")
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise TransportError(f"Unable to download k3s installer: {e}", command=url)

    if response.status_code != 200:
        raise TransportError(
            f"Invalid status code for k3s installer script: {response.status_code}",
            command=url,
        )
    if not response.content:
        raise TransportError("Invalid k3s installer filesize", "The download was empty", command=url)

    fd, name = tempfile.mkstemp(prefix="k3s-installer-", suffix=".sh")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(response.content)
        path.chmod(0o755)
    except OSError as e:
        path.unlink(missing_ok=True)
        raise TransportError(f"Unable to write k3s installer to file: {e}")

    logger.debug(f"Wrote k3s installer to {path}")
    return path


def parse_k3s_version(output: str) -> str:
    """Extract the version from ``k3s --version`` output.

    The first line must read ``k3s version <version> (<commit>)``.

    Raises:
        TransportError: If the line does not have exactly four fields
    """
    first_line = output.split("\n")[0]
    parts = first_line.split(" ")
    if len(parts) != 4:
        raise TransportError(
            "Unable to get k3s version from k3s --version",
            f"Unexpected output: {output.strip() or '<empty>'}",
            command="k3s --version",
        )
    return parts[2]


def bootstrap_flags(node_name: str, token: str, taint_scheduling: bool = False) -> list[str]:
    """Installer flags for the node that initializes the cluster."""
    args = [
        "--cluster-init",
        "--disable", "local-storage",
        "--etcd-expose-metrics",
        "--flannel-backend=wireguard-native",
        "--kube-controller-manager-arg", "bind-address=0.0.0.0",
        "--kube-proxy-arg", "metrics-bind-address=0.0.0.0",
        "--kube-scheduler-arg", "bind-address=0.0.0.0",
        "--kube-controller-manager-arg", "terminated-pod-gc-threshold=10",
        "--node-name", node_name,
        "--write-kubeconfig-mode", "0644",
        "--token", token,
    ]  # fmt: skip
    if taint_scheduling:
        args += ["--node-taint", TAINT_CRITICAL_ADDONS_ONLY]
    return args


def join_flags(
    role: NodeRole, node_name: str, server_ip: str, token: str, taint_scheduling: bool = False
) -> list[str]:
    """Installer flags for a node joining an existing cluster."""
    args = [
        "--disable", "local-storage",
        "--flannel-backend=wireguard-native",
        "--node-name", node_name,
        "--server", f"https://{server_ip}:{API_SERVER_PORT}",
        "--token", token,
    ]  # fmt: skip

    if role == NodeRole.SERVER:
        args = ["server", *args, *CONTROL_PLANE_FLAGS]
    else:
        args += WORKER_FLAGS

    if taint_scheduling:
        args += ["--node-taint", TAINT_CRITICAL_ADDONS_ONLY]
    return args
