"""Adding servers and workers to an existing cluster."""

from collections.abc import Callable
from dataclasses import dataclass

from k3s_manager.cancellation import CancellationToken
from k3s_manager.convergence import DEFAULT_ATTEMPTS, ConvergenceWaiter
from k3s_manager.exceptions import (
    InvalidCombination,
    InvalidRole,
    JoinNotObserved,
    MissingToken,
    NotInitialized,
    PreconditionFailed,
)
from k3s_manager.executor import CommandExecutor, RemoteHost
from k3s_manager.identity import IdentityAllocator
from k3s_manager.installer import (
    APT_INSTALL_ARGS,
    APT_UPDATE_ARGS,
    INSTALLER_URL,
    join_flags,
    parse_k3s_version,
)
from k3s_manager.kube import ClusterClient
from k3s_manager.logging_config import get_logger
from k3s_manager.membership import MembershipReconciler
from k3s_manager.models.cluster import K3sPaths
from k3s_manager.models.node import ClusterNode, NodeIdentity, NodeRole
from k3s_manager.network import interface_ipv4
from k3s_manager.properties import PropertyStore
from k3s_manager.steps import Step, StepRunner

logger = get_logger(__name__)


@dataclass
class JoinContext:
    """State carried between join steps."""

    role: NodeRole
    remote_host: str
    remote_hostname: str
    server_ip: str
    token: str
    allow_unknown_hosts: bool = False
    taint_scheduling: bool = False
    k3s_version: str = ""
    identity: NodeIdentity | None = None
    node: ClusterNode | None = None


class JoinOrchestrator:
    """Installs k3s on a remote host over ssh and joins it to this cluster.

    The local host must already run k3s; it provides the join token, the
    API server address and the version the new node is pinned to.
    """

    def __init__(
        self,
        properties: PropertyStore,
        executor: CommandExecutor,
        cluster: ClusterClient,
        paths: K3sPaths | None = None,
        allocator: IdentityAllocator | None = None,
        waiter: ConvergenceWaiter | None = None,
        reconciler: MembershipReconciler | None = None,
        cancellation: CancellationToken | None = None,
        progress: Callable[[str], None] | None = None,
        max_attempts: int = DEFAULT_ATTEMPTS,
    ):
        self.properties = properties
        self.executor = executor
        self.cluster = cluster
        self.paths = paths or K3sPaths()
        self.allocator = allocator or IdentityAllocator(properties)
        self.cancellation = cancellation or CancellationToken()
        self.waiter = waiter or ConvergenceWaiter(cluster, cancellation=self.cancellation)
        self.reconciler = reconciler or MembershipReconciler(
            cluster, executor, self.paths.registry_config, self.paths.remote_registry_config
        )
        self.runner = StepRunner(self.cancellation, progress)
        self.max_attempts = max_attempts

    def check_preconditions(
        self,
        role: str,
        remote_host: str,
        allow_unknown_hosts: bool = False,
        taint_scheduling: bool = False,
    ) -> JoinContext:
        """Validate inputs before any command runs and build the join context."""
        if not self.paths.is_installed():
            raise NotInitialized(
                "k3s not installed, cannot join cluster",
                "Run 'k3s-mgr initialize' on this host first",
            )

        try:
            node_role = NodeRole(role)
        except ValueError:
            raise InvalidRole(
                f"Invalid server-type: {role}", "The role must be 'server' or 'worker'"
            )

        token = self.allocator.current_token()
        if not token:
            raise MissingToken(
                "Missing k3s token",
                "The token is created by 'k3s-mgr initialize' or can be set with "
                "'k3s-mgr set token <value>'",
            )

        if taint_scheduling and node_role == NodeRole.WORKER:
            raise InvalidCombination("Taint scheduling can only be used on the server role")

        try:
            remote_hostname = RemoteHost.parse(remote_host).hostname
        except ValueError as e:
            raise PreconditionFailed(f"Invalid remote host: {remote_host}", str(e))

        server_ip = interface_ipv4(self.properties.get_global("network-interface"))
        return JoinContext(
            role=node_role,
            remote_host=remote_host,
            remote_hostname=remote_hostname,
            server_ip=server_ip,
            token=token,
            allow_unknown_hosts=allow_unknown_hosts,
            taint_scheduling=taint_scheduling,
        )

    def steps(self, ctx: JoinContext) -> list[Step]:
        return [
            Step("query-local-version", "Reading local k3s version", lambda: self._version(ctx)),
            Step("update-packages", "Updating apt", lambda: self._remote_apt(ctx, APT_UPDATE_ARGS)),
            Step(
                "install-dependencies",
                "Installing k3s dependencies",
                lambda: self._remote_apt(ctx, APT_INSTALL_ARGS),
            ),
            Step("download-installer", "Downloading k3s installer", lambda: self._download(ctx)),
            Step(
                "set-installer-permissions",
                "Setting k3s installer permissions",
                lambda: self._chmod(ctx),
            ),
            Step("allocate-node-name", "Allocating node name", lambda: self._allocate(ctx)),
            Step("run-installer", "Adding node to k3s cluster", lambda: self._install(ctx)),
            Step("wait-for-node", "Waiting for node to exist", lambda: self._wait(ctx)),
            Step(
                "reconcile-membership",
                "Labeling and annotating node",
                lambda: self._reconcile(ctx),
            ),
        ]

    def run(
        self,
        role: str,
        remote_host: str,
        allow_unknown_hosts: bool = False,
        taint_scheduling: bool = False,
    ) -> ClusterNode:
        """Join ``remote_host`` as ``role`` and return the node as the API sees it."""
        ctx = self.check_preconditions(role, remote_host, allow_unknown_hosts, taint_scheduling)
        logger.info(f"Joining {remote_host} to k3s cluster as {ctx.role.value}")
        self.runner.run(self.steps(ctx))
        return ctx.node

    def _remote(self, ctx: JoinContext, command: str, args: list[str], sudo: bool = False, **kw):
        return self.executor.check(
            command,
            args,
            remote_host=ctx.remote_host,
            allow_unknown_hosts=ctx.allow_unknown_hosts,
            stream_output=True,
            sudo=sudo,
            **kw,
        )

    def _version(self, ctx: JoinContext) -> None:
        result = self.executor.check("k3s", ["--version"], capture_output=True)
        ctx.k3s_version = parse_k3s_version(result.stdout)
        logger.debug(f"k3s version: {ctx.k3s_version}")

    def _remote_apt(self, ctx: JoinContext, args: list[str]) -> None:
        self._remote(ctx, "apt-get", args, sudo=True)

    def _download(self, ctx: JoinContext) -> None:
        self._remote(ctx, "curl", ["-sfL", "-o", self.paths.remote_installer, INSTALLER_URL])

    def _chmod(self, ctx: JoinContext) -> None:
        self._remote(ctx, "chmod", ["0755", self.paths.remote_installer])

    def _allocate(self, ctx: JoinContext) -> None:
        ctx.identity = self.allocator.node_identity(
            ctx.remote_hostname, ctx.role, origin_host=ctx.remote_host
        )

    def _install(self, ctx: JoinContext) -> None:
        args = join_flags(
            ctx.role, ctx.identity.name, ctx.server_ip, ctx.token, ctx.taint_scheduling
        )
        self._remote(
            ctx,
            self.paths.remote_installer,
            args,
            sudo=True,
            env={"INSTALL_K3S_VERSION": ctx.k3s_version},
        )

    def _wait(self, ctx: JoinContext) -> None:
        nodes = self.waiter.wait_for_node(ctx.identity.name, self.max_attempts)
        if not nodes:
            raise JoinNotObserved(
                f"Unable to find node {ctx.identity.name} after joining cluster",
                "The installer succeeded on the remote host but the node never appeared in "
                "the API; it has not been labeled, annotated or given registry credentials",
            )
        ctx.node = nodes[0]

    def _reconcile(self, ctx: JoinContext) -> None:
        self.reconciler.reconcile_join(
            ctx.node, ctx.role, ctx.remote_host, ctx.allow_unknown_hosts
        )
