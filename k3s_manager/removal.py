"""Removing nodes from the cluster and uninstalling k3s."""

from collections.abc import Callable

from k3s_manager.cancellation import CancellationToken
from k3s_manager.exceptions import (
    KubernetesError,
    NodeNotFound,
    NotInitialized,
    OrphanedNodeRecord,
)
from k3s_manager.executor import CommandExecutor
from k3s_manager.kube import ClusterClient
from k3s_manager.logging_config import get_logger
from k3s_manager.membership import MembershipReconciler
from k3s_manager.models.cluster import K3sPaths
from k3s_manager.steps import Step, StepRunner

logger = get_logger(__name__)


class RemovalOrchestrator:
    """Uninstalls k3s from a remotely joined node, then deletes its node object.

    The order is fixed: the runtime goes first so a failed uninstall leaves
    the node visible for follow-up instead of orphaning a running agent.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        cluster: ClusterClient,
        paths: K3sPaths | None = None,
        cancellation: CancellationToken | None = None,
        progress: Callable[[str], None] | None = None,
    ):
        self.executor = executor
        self.cluster = cluster
        self.paths = paths or K3sPaths()
        self.runner = StepRunner(cancellation, progress)

    def check_preconditions(self, node_name: str) -> str:
        """Return the host the node was joined from.

        Raises:
            NotInitialized: If k3s is not installed locally
            NodeNotFound: If the node does not exist
            NotRemoteManaged: If the node has no origin annotation
        """
        if not self.paths.is_installed():
            raise NotInitialized("k3s not installed, cannot remove node")

        logger.debug(f"Getting node {node_name} remote connection information")
        node = self.cluster.get_node(node_name)
        return MembershipReconciler.removal_eligibility(node)

    def steps(self, node_name: str, remote_host: str) -> list[Step]:
        return [
            Step(
                "uninstall-runtime",
                f"Uninstalling k3s on {remote_host}",
                lambda: self._uninstall(remote_host),
            ),
            Step(
                "delete-node",
                f"Deleting node {node_name} from k3s cluster",
                lambda: self._delete(node_name, remote_host),
                # the runtime is already gone, so stopping here would orphan the node
                cancellable=False,
            ),
        ]

    def run(self, node_name: str) -> str:
        """Remove ``node_name`` and return the host it ran on."""
        remote_host = self.check_preconditions(node_name)
        logger.info(f"Removing {node_name} ({remote_host}) from k3s cluster")
        self.runner.run(self.steps(node_name, remote_host))
        return remote_host

    def _uninstall(self, remote_host: str) -> None:
        # removal is administrative, so host keys are never enforced here
        self.executor.check(
            self.paths.uninstall_script,
            [],
            remote_host=remote_host,
            sudo=True,
            allow_unknown_hosts=True,
            stream_output=True,
        )

    def _delete(self, node_name: str, remote_host: str) -> None:
        try:
            self.cluster.delete_node(node_name)
        except NodeNotFound:
            logger.info(f"Node {node_name} already deleted")
        except KubernetesError as e:
            raise OrphanedNodeRecord(
                f"Node {node_name} removed from runtime but still present in API",
                f"k3s was uninstalled on {remote_host} but deleting the node failed: "
                f"{e.message}\n\nDelete it manually with: kubectl delete node {node_name}",
                node_name=node_name,
            ) from e


def uninstall_local(executor: CommandExecutor, paths: K3sPaths | None = None) -> None:
    """Uninstall k3s from the local host.

    Raises:
        NotInitialized: If k3s is not installed
        TransportError: If the uninstall script fails
    """
    paths = paths or K3sPaths()
    if not paths.is_installed():
        raise NotInitialized("k3s not installed, cannot uninstall")

    logger.info("Uninstalling k3s")
    executor.check(paths.uninstall_script, [], stream_output=True)
