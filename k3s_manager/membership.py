"""Node metadata reconciliation after membership changes."""

from pathlib import Path

from k3s_manager.exceptions import ConfigurationError, NotRemoteManaged
from k3s_manager.executor import CommandExecutor
from k3s_manager.kube import ClusterClient
from k3s_manager.logging_config import get_logger
from k3s_manager.models.node import (
    REMOTE_HOST_ANNOTATION,
    ClusterNode,
    NodeRole,
    labels_for_role,
)

logger = get_logger(__name__)

REMOTE_STAGING_PATH = "/tmp/k3s-mgr-registries.yaml"


class MembershipReconciler:
    """Keeps labels, registry credentials and the origin annotation in line.

    The origin annotation is the only record of a node having been joined
    over ssh; removal refuses nodes without it.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        executor: CommandExecutor,
        registry_config: Path,
        remote_registry_config: str,
    ):
        self.cluster = cluster
        self.executor = executor
        self.registry_config = Path(registry_config)
        self.remote_registry_config = remote_registry_config

    def apply_labels(self, node_name: str, role: NodeRole) -> None:
        for key, value in labels_for_role(role).items():
            logger.info(f"Labeling node {node_name} {key}={value}")
            self.cluster.label_node(node_name, key, value)

    def copy_registry_config(self, remote_host: str, allow_unknown_hosts: bool = False) -> None:
        """Replace the remote registries file with the local one."""
        if not self.registry_config.exists():
            raise ConfigurationError(
                f"Registry config not found: {self.registry_config}",
                "Initialize the cluster on this host before adding nodes",
            )

        logger.info(f"Copying {self.registry_config} to {remote_host}")
        self.executor.copy_to_remote(
            str(self.registry_config), remote_host, REMOTE_STAGING_PATH, allow_unknown_hosts
        )
        remote_dir = str(Path(self.remote_registry_config).parent)
        self.executor.check(
            "mkdir",
            ["-p", remote_dir],
            remote_host=remote_host,
            sudo=True,
            allow_unknown_hosts=allow_unknown_hosts,
        )
        self.executor.check(
            "mv",
            [REMOTE_STAGING_PATH, self.remote_registry_config],
            remote_host=remote_host,
            sudo=True,
            allow_unknown_hosts=allow_unknown_hosts,
        )

    def annotate_origin(self, node_name: str, remote_host: str) -> None:
        logger.info(f"Annotating node {node_name} with connection information")
        self.cluster.annotate_node(node_name, REMOTE_HOST_ANNOTATION, remote_host)

    def reconcile_join(
        self,
        node: ClusterNode,
        role: NodeRole,
        remote_host: str,
        allow_unknown_hosts: bool = False,
    ) -> None:
        """Bring a freshly joined node's metadata in line with how it was provisioned."""
        self.apply_labels(node.name, role)
        self.copy_registry_config(remote_host, allow_unknown_hosts)
        self.annotate_origin(node.name, remote_host)

    @staticmethod
    def removal_eligibility(node: ClusterNode) -> str:
        """Return the host a node was joined from.

        Raises:
            NotRemoteManaged: If the node carries no origin annotation
        """
        if not node.remote_host:
            raise NotRemoteManaged(
                f"Node {node.name} is not a remote node managed by k3s-mgr",
                f"Only nodes annotated with {REMOTE_HOST_ANNOTATION} can be removed; "
                "locally bootstrapped nodes must be uninstalled on the host itself",
            )
        return node.remote_host
