"""Custom exceptions for k3s manager."""


class K3sManagerError(Exception):
    """Base exception for all k3s manager errors."""

    def __init__(self, message: str, details: str | None = None):
        """Initialize the exception.

        Args:
            message: Main error message
            details: Additional details or suggestions
        """
        self.message = message
        self.details = details
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the complete error message.

        Returns:
            Formatted error message with details
        """
        if self.details:
            return f"{self.message}\n\nDetails: {self.details}"
        return self.message


class PreconditionFailed(K3sManagerError):
    """Raised when an operation cannot start; fix the inputs and rerun."""

    pass


class AlreadyInitialized(PreconditionFailed):
    """Raised when bootstrapping a host that already runs k3s."""

    pass


class NotInitialized(PreconditionFailed):
    """Raised when an operation needs a local k3s installation."""

    pass


class InvalidRole(PreconditionFailed):
    """Raised for a node role other than server or worker."""

    pass


class MissingToken(PreconditionFailed):
    """Raised when joining before a cluster token exists."""

    pass


class InvalidCombination(PreconditionFailed):
    """Raised for option combinations that are not allowed together."""

    pass


class NetworkConfigError(K3sManagerError):
    """Raised when no IPv4 address can be resolved for the network interface."""

    pass


class TransportError(K3sManagerError):
    """Raised when a local or remote command cannot run or exits non-zero."""

    def __init__(
        self,
        message: str,
        details: str | None = None,
        command: str | None = None,
        exit_code: int | None = None,
    ):
        self.command = command
        self.exit_code = exit_code
        super().__init__(message, details)


class ConvergenceTimeout(K3sManagerError):
    """Raised when cluster state never reflected a successful remote action."""

    pass


class JoinNotObserved(ConvergenceTimeout):
    """Raised when a joined node never shows up in the API."""

    pass


class RemovalError(K3sManagerError):
    """Base exception for node removal conditions."""

    pass


class NotRemoteManaged(RemovalError):
    """Raised when a node has no origin annotation and cannot be removed remotely."""

    pass


class OrphanedNodeRecord(RemovalError):
    """Raised when the runtime was uninstalled but the node object survived."""

    def __init__(self, message: str, details: str | None = None, node_name: str | None = None):
        self.node_name = node_name
        super().__init__(message, details)


class KubernetesError(K3sManagerError):
    """Exception raised for Kubernetes API errors."""

    def __init__(self, message: str, details: str | None = None, status: int | None = None):
        self.status = status
        super().__init__(message, details)


class NodeNotFound(KubernetesError):
    """Raised when a node object does not exist."""

    pass


class ConfigurationError(K3sManagerError):
    """Exception raised for configuration errors."""

    pass


class OperationCancelled(K3sManagerError):
    """Raised when a workflow is interrupted between steps."""

    pass
