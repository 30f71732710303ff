"""First-server initialization."""

from collections.abc import Callable
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path

from k3s_manager.cancellation import CancellationToken
from k3s_manager.exceptions import AlreadyInitialized
from k3s_manager.executor import CommandExecutor
from k3s_manager.identity import IdentityAllocator
from k3s_manager.installer import (
    APT_INSTALL_ARGS,
    APT_UPDATE_ARGS,
    bootstrap_flags,
    download_installer,
)
from k3s_manager.kube import ClusterClient
from k3s_manager.logging_config import get_logger
from k3s_manager.membership import MembershipReconciler
from k3s_manager.models.cluster import HELM_CHARTS, KUBERNETES_MANIFESTS, K3sPaths
from k3s_manager.models.node import NodeIdentity, NodeRole
from k3s_manager.network import interface_ipv4
from k3s_manager.properties import PropertyStore
from k3s_manager.steps import Step, StepRunner

logger = get_logger(__name__)

SERVICE_ACCOUNT = "k3s-mgr"
INGRESS_CONFIG_NAME = "traefik-custom.yaml"


@dataclass
class BootstrapContext:
    """State carried between bootstrap steps."""

    server_ip: str
    taint_scheduling: bool = False
    installer_path: Path | None = None
    token: str = ""
    identity: NodeIdentity | None = None
    manifests_applied: list[str] = field(default_factory=list)


class BootstrapOrchestrator:
    """Initializes k3s on the local host as the first cluster server.

    Every step is a single external operation. The first failure aborts the
    run without rolling back; the workflow is meant to be fixed and rerun.
    """

    def __init__(
        self,
        properties: PropertyStore,
        executor: CommandExecutor,
        cluster: ClusterClient,
        paths: K3sPaths | None = None,
        allocator: IdentityAllocator | None = None,
        cancellation: CancellationToken | None = None,
        progress: Callable[[str], None] | None = None,
        service_account: str = SERVICE_ACCOUNT,
    ):
        self.properties = properties
        self.executor = executor
        self.cluster = cluster
        self.paths = paths or K3sPaths()
        self.allocator = allocator or IdentityAllocator(properties)
        self.reconciler = MembershipReconciler(
            cluster, executor, self.paths.registry_config, self.paths.remote_registry_config
        )
        self.runner = StepRunner(cancellation, progress)
        self.service_account = service_account

    def check_preconditions(self) -> str:
        """Fail fast before anything is installed; return the server IP."""
        if self.paths.is_installed():
            raise AlreadyInitialized(
                "k3s already installed, cannot re-initialize k3s",
                f"Found {self.paths.k3s_binary}. Run 'k3s-mgr uninstall' first to start over.",
            )
        return interface_ipv4(self.properties.get_global("network-interface"))

    def steps(self, ctx: BootstrapContext) -> list[Step]:
        return [
            Step("update-packages", "Updating apt", self._update_packages),
            Step("install-dependencies", "Installing k3s dependencies", self._install_dependencies),
            Step("download-installer", "Downloading k3s installer", lambda: self._download(ctx)),
            Step("ensure-token", "Ensuring cluster token", lambda: self._ensure_token(ctx)),
            Step("allocate-node-name", "Allocating node name", lambda: self._allocate(ctx)),
            Step("run-installer", "Running k3s installer", lambda: self._run_installer(ctx)),
            Step(
                "create-registry-config",
                "Setting registries.yaml permissions",
                self._create_registry_config,
            ),
            Step("apply-manifests", "Installing kubernetes manifests", lambda: self._apply(ctx)),
            Step("label-node", "Labeling node", lambda: self._label(ctx)),
            Step("write-ingress-config", "Updating traefik config", self._write_ingress_config),
            Step("install-addons", "Installing helm charts", self._install_addons),
        ]

    def run(self, taint_scheduling: bool = False) -> NodeIdentity:
        """Bootstrap the cluster and return the new server's identity."""
        ctx = BootstrapContext(
            server_ip=self.check_preconditions(), taint_scheduling=taint_scheduling
        )
        logger.info(f"Initializing k3s on {ctx.server_ip}")

        try:
            self.runner.run(self.steps(ctx))
        finally:
            if ctx.installer_path:
                ctx.installer_path.unlink(missing_ok=True)
                logger.debug(f"Removed {ctx.installer_path}")

        return ctx.identity

    def _update_packages(self) -> None:
        self.executor.check("apt-get", APT_UPDATE_ARGS, stream_output=True)

    def _install_dependencies(self) -> None:
        self.executor.check("apt-get", APT_INSTALL_ARGS, stream_output=True)

    def _download(self, ctx: BootstrapContext) -> None:
        ctx.installer_path = download_installer()

    def _ensure_token(self, ctx: BootstrapContext) -> None:
        ctx.token = self.allocator.ensure_token()

    def _allocate(self, ctx: BootstrapContext) -> None:
        ctx.identity = self.allocator.node_identity(ctx.server_ip, NodeRole.SERVER)

    def _run_installer(self, ctx: BootstrapContext) -> None:
        args = bootstrap_flags(ctx.identity.name, ctx.token, ctx.taint_scheduling)
        self.executor.check(str(ctx.installer_path), args, stream_output=True)

    def _create_registry_config(self) -> None:
        registry_config = self.paths.registry_config
        registry_config.parent.mkdir(parents=True, exist_ok=True)
        registry_config.touch(exist_ok=True)
        self.executor.check(
            "setfacl",
            ["-m", f"user:{self.service_account}:rwx", str(registry_config)],
            stream_output=True,
        )

    def _apply(self, ctx: BootstrapContext) -> None:
        for manifest in KUBERNETES_MANIFESTS:
            logger.info(f"Installing {manifest.name}@{manifest.version}")
            self.cluster.apply_manifest(manifest.url)
            ctx.manifests_applied.append(manifest.name)

    def _label(self, ctx: BootstrapContext) -> None:
        self.reconciler.apply_labels(ctx.identity.name, NodeRole.SERVER)

    def _write_ingress_config(self) -> None:
        contents = resources.files("k3s_manager").joinpath("templates/traefik-config.yaml")
        target = self.paths.server_manifests_dir / INGRESS_CONFIG_NAME
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(contents.read_text())
        target.chmod(0o600)

    def _install_addons(self) -> None:
        for chart in HELM_CHARTS:
            logger.info(f"Installing {chart.release_name}@{chart.version}")
            self.cluster.apply_objects([chart.to_resource()])
