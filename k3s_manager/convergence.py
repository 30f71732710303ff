"""Waiting for a joined node to appear in the API."""

from k3s_manager.cancellation import CancellationToken
from k3s_manager.exceptions import NodeNotFound
from k3s_manager.kube import ClusterClient
from k3s_manager.logging_config import get_logger
from k3s_manager.models.node import ClusterNode

logger = get_logger(__name__)

DEFAULT_ATTEMPTS = 20
DEFAULT_DELAY = 5.0


class ConvergenceWaiter:
    """Polls the API until a node exists.

    Only "not found" is retried. Any other API error means the API itself
    is unhealthy and is raised on the spot, so outages are not reported as
    slow convergence.
    """

    def __init__(
        self,
        cluster: ClusterClient,
        delay: float = DEFAULT_DELAY,
        cancellation: CancellationToken | None = None,
    ):
        self.cluster = cluster
        self.delay = delay
        self.cancellation = cancellation or CancellationToken()

    def wait_for_node(self, name: str, max_attempts: int = DEFAULT_ATTEMPTS) -> list[ClusterNode]:
        """Return ``[node]`` once visible, or ``[]`` after ``max_attempts`` queries.

        Raises:
            KubernetesError: On any query error other than not found
            OperationCancelled: If cancelled while waiting between attempts
        """
        for attempt in range(1, max_attempts + 1):
            try:
                node = self.cluster.get_node(name)
            except NodeNotFound:
                logger.debug(f"Node {name} not visible yet (attempt {attempt}/{max_attempts})")
            else:
                logger.info(f"Node {name} visible after {attempt} attempt(s)")
                return [node]

            if attempt < max_attempts and self.cancellation.wait(self.delay):
                self.cancellation.raise_if_cancelled()

        logger.warning(f"Node {name} not visible after {max_attempts} attempts")
        return []
