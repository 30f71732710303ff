"""Main CLI entry point for k3s node management."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from k3s_manager.exceptions import K3sManagerError, OperationCancelled, OrphanedNodeRecord
from k3s_manager.logging_config import get_logger, setup_logging
from k3s_manager.properties import DEFAULT_PROPERTIES_PATH, GLOBAL_SCOPE

app = typer.Typer(
    name="k3s-mgr",
    help="Bootstrap, grow and shrink k3s clusters over ssh",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)

OUTPUT_FORMATS = ["stdout", "json"]


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    log_file: str | None = typer.Option(None, "--log-file", help="Path to log file"),
    properties: str = typer.Option(
        str(DEFAULT_PROPERTIES_PATH),
        "--properties",
        envvar="K3S_MGR_PROPERTIES",
        help="Path to the properties file",
    ),
):
    """Global options for all commands."""
    log_path = Path(log_file) if log_file else None
    setup_logging(verbose=verbose, log_file=log_path)
    ctx.obj = {"properties": Path(properties)}
    logger.debug("Logging initialized")


def _progress(message: str) -> None:
    console.print(f"[bold blue]----->[/bold blue] {message}")


def _fail(e: K3sManagerError) -> None:
    logger.error(f"{type(e).__name__}: {e.message}")
    label = "Cancelled" if isinstance(e, OperationCancelled) else "Error"
    console.print(f"[red]{label}:[/red] {e.message}")
    if e.details:
        console.print(f"\n{e.details}")
    code = 130 if isinstance(e, OperationCancelled) else 1
    raise typer.Exit(code=code)


def _properties(ctx: typer.Context):
    from k3s_manager.properties import PropertyStore

    return PropertyStore(ctx.obj["properties"])


def _cluster(paths):
    from k3s_manager.kube import ClusterClient

    return ClusterClient(paths.kubeconfig)


def _validate_format(output_format: str) -> None:
    if output_format not in OUTPUT_FORMATS:
        console.print(
            f"[red]Error:[/red] Invalid format '{output_format}'. "
            f"Must be one of: {', '.join(OUTPUT_FORMATS)}"
        )
        raise typer.Exit(code=1)


@app.command()
def version() -> None:
    """Show version information."""
    from k3s_manager import __version__

    typer.echo(f"k3s-mgr version {__version__}")


@app.command()
def initialize(
    ctx: typer.Context,
    taint_scheduling: bool = typer.Option(
        False,
        "--taint-scheduling",
        help="Reserve this server for critical add-ons (CriticalAddonsOnly taint)",
    ),
) -> None:
    """
    Initialize a k3s cluster on this host.

    Installs dependencies and k3s, creates the cluster token, registry
    credentials file and add-ons. Safe to rerun after fixing a failure as
    long as k3s itself was not installed yet.
    """
    from k3s_manager.bootstrap import BootstrapOrchestrator
    from k3s_manager.cancellation import CancellationToken, cancel_on_signals
    from k3s_manager.executor import CommandExecutor
    from k3s_manager.models.cluster import K3sPaths

    paths = K3sPaths()
    token = CancellationToken()
    orchestrator = BootstrapOrchestrator(
        _properties(ctx),
        CommandExecutor(),
        _cluster(paths),
        paths=paths,
        cancellation=token,
        progress=_progress,
    )

    console.print("[bold cyan]Initializing k3s[/bold cyan]")
    try:
        with cancel_on_signals(token):
            identity = orchestrator.run(taint_scheduling=taint_scheduling)
    except K3sManagerError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Cluster initialized, server node: {identity.name}")


@app.command()
def cluster_add(
    ctx: typer.Context,
    remote_host: str = typer.Argument(..., help="Host to join, e.g. ssh://root@server-2"),
    role: str = typer.Option("worker", "--role", "-r", help="Node role: server or worker"),
    allow_unknown_hosts: bool = typer.Option(
        False, "--insecure-allow-unknown-hosts", help="Skip ssh host key verification"
    ),
    taint_scheduling: bool = typer.Option(
        False,
        "--taint-scheduling",
        help="Reserve a server for critical add-ons (server role only)",
    ),
) -> None:
    """
    Join a remote host to the cluster over ssh.

    Installs k3s on the remote host at the local k3s version, waits for the
    node to appear, then labels it, copies registry credentials and records
    the host it was joined from.
    """
    from k3s_manager.cancellation import CancellationToken, cancel_on_signals
    from k3s_manager.executor import CommandExecutor
    from k3s_manager.join import JoinOrchestrator
    from k3s_manager.models.cluster import K3sPaths

    paths = K3sPaths()
    token = CancellationToken()
    orchestrator = JoinOrchestrator(
        _properties(ctx),
        CommandExecutor(),
        _cluster(paths),
        paths=paths,
        cancellation=token,
        progress=_progress,
    )

    console.print(f"[bold cyan]Joining {remote_host} to k3s cluster as {role}[/bold cyan]")
    try:
        with cancel_on_signals(token):
            node = orchestrator.run(role, remote_host, allow_unknown_hosts, taint_scheduling)
    except K3sManagerError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Node {node.name} joined the cluster")


@app.command()
def cluster_list(
    output_format: str = typer.Option("stdout", "--format", "-f", help="Output format: stdout or json"),
) -> None:
    """List the nodes in the k3s cluster."""
    from k3s_manager.exceptions import NotInitialized
    from k3s_manager.models.cluster import K3sPaths

    _validate_format(output_format)
    paths = K3sPaths()

    try:
        if not paths.is_installed():
            raise NotInitialized("k3s not installed, cannot list cluster nodes")
        nodes = _cluster(paths).list_nodes()
    except K3sManagerError as e:
        _fail(e)

    if output_format == "json":
        typer.echo(json.dumps([node.model_dump() for node in nodes]))
        return

    table = Table()
    table.add_column("Name", style="cyan")
    table.add_column("Ready", style="green")
    table.add_column("Roles", style="magenta")
    table.add_column("Version", style="blue")
    for node in sorted(nodes, key=lambda n: n.name):
        table.add_row(node.name, str(node.ready).lower(), ",".join(node.roles), node.version)
    console.print(table)


@app.command()
def cluster_remove(
    node_name: str = typer.Argument(..., help="Name of the node to remove"),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """
    Remove a remotely joined node from the cluster.

    Uninstalls k3s on the node's host over ssh, then deletes the node object.
    Nodes that were not joined with cluster-add are refused.
    """
    from k3s_manager.cancellation import CancellationToken, cancel_on_signals
    from k3s_manager.executor import CommandExecutor
    from k3s_manager.models.cluster import K3sPaths
    from k3s_manager.removal import RemovalOrchestrator

    if not force:
        console.print(
            f"[yellow]Warning:[/yellow] About to uninstall k3s from the host of '{node_name}'"
        )
        if not typer.confirm("Are you sure you want to continue?"):
            console.print("Operation cancelled")
            raise typer.Exit(code=0)

    paths = K3sPaths()
    token = CancellationToken()
    orchestrator = RemovalOrchestrator(
        CommandExecutor(), _cluster(paths), paths=paths, cancellation=token, progress=_progress
    )

    try:
        with cancel_on_signals(token):
            remote_host = orchestrator.run(node_name)
    except OrphanedNodeRecord as e:
        console.print("[yellow]Partial removal:[/yellow] follow up manually")
        _fail(e)
    except K3sManagerError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Removed {node_name} ({remote_host}) from the cluster")


@app.command("set")
def set_property(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Property to set"),
    value: str = typer.Argument("", help="Property value; omit to clear"),
    app_name: str | None = typer.Option(
        None, "--app", "-a", help="App to set the property for; global when omitted"
    ),
) -> None:
    """
    Set or clear a property globally or for one app.

    Examples:
        k3s-mgr set network-interface eth1
        k3s-mgr set namespace staging --app my-app
        k3s-mgr set token
    """
    scope = app_name or GLOBAL_SCOPE
    try:
        _properties(ctx).set(key, value, scope)
    except K3sManagerError as e:
        _fail(e)

    where = "globally" if scope == GLOBAL_SCOPE else f"for {scope}"
    if value:
        console.print(f"[green]✓[/green] Set {key} {where}")
    else:
        console.print(f"[green]✓[/green] Cleared {key} {where}")


@app.command()
def report(
    ctx: typer.Context,
    app_name: str | None = typer.Argument(None, help="App to report on; all apps when omitted"),
    output_format: str = typer.Option("stdout", "--format", "-f", help="Output format: stdout or json"),
    info: str | None = typer.Option(
        None, "--info", help="Print a single value, e.g. computed-namespace"
    ),
) -> None:
    """Display scheduler properties for one or more apps."""
    _validate_format(output_format)

    try:
        store = _properties(ctx)
        apps = [app_name] if app_name else store.apps()
        reports = {name: store.report(name) for name in apps}
    except K3sManagerError as e:
        _fail(e)

    if info:
        for name, values in reports.items():
            if info not in values:
                console.print(f"[red]Error:[/red] Invalid flag passed, valid flags: {', '.join(values)}")
                raise typer.Exit(code=1)
            typer.echo(values[info])
        return

    if output_format == "json":
        typer.echo(json.dumps(reports))
        return

    for name, values in reports.items():
        table = Table(title=f"{name} scheduler-k3s information")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="magenta")
        for key, value in values.items():
            table.add_row(key, value)
        console.print(table)


@app.command()
def show_kubeconfig() -> None:
    """Display the kubeconfig written by k3s."""
    from k3s_manager.models.cluster import K3sPaths

    kubeconfig = K3sPaths().kubeconfig
    if not kubeconfig.exists():
        console.print(f"[red]Error:[/red] Kubeconfig file does not exist: {kubeconfig}")
        raise typer.Exit(code=1)

    try:
        typer.echo(kubeconfig.read_text())
    except OSError as e:
        console.print(f"[red]Error:[/red] Unable to read kubeconfig file: {e}")
        raise typer.Exit(code=1)


@app.command()
def uninstall(
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmation prompt"),
) -> None:
    """Uninstall k3s from this host."""
    from k3s_manager.executor import CommandExecutor
    from k3s_manager.removal import uninstall_local

    if not force and not typer.confirm("Uninstall k3s from this host?"):
        console.print("Operation cancelled")
        raise typer.Exit(code=0)

    try:
        uninstall_local(CommandExecutor())
    except K3sManagerError as e:
        _fail(e)

    console.print("[green]✓[/green] k3s uninstalled")


if __name__ == "__main__":
    app()
