"""Unit tests for CLI commands."""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from k3s_manager.cli import app
from k3s_manager.exceptions import (
    AlreadyInitialized,
    InvalidCombination,
    OperationCancelled,
    OrphanedNodeRecord,
)
from k3s_manager.models.node import ClusterNode, NodeIdentity, NodeRole

runner = CliRunner()


@pytest.fixture
def props_file(tmp_path):
    return str(tmp_path / "properties.yml")


@pytest.fixture
def local_paths(paths):
    with patch("k3s_manager.models.cluster.K3sPaths", return_value=paths):
        yield paths


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "k3s-mgr version 0.1.0" in result.stdout


def test_help_lists_commands():
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    for command in ("initialize", "cluster-add", "cluster-list", "cluster-remove", "report"):
        assert command in result.stdout


def test_set_and_report(props_file):
    result = runner.invoke(app, ["--properties", props_file, "set", "namespace", "apps"])
    assert result.exit_code == 0
    assert "Set namespace globally" in result.stdout

    result = runner.invoke(
        app, ["--properties", props_file, "set", "namespace", "staging", "--app", "web"]
    )
    assert result.exit_code == 0

    result = runner.invoke(
        app, ["--properties", props_file, "report", "web", "--info", "global-namespace"]
    )
    assert result.exit_code == 0
    assert result.stdout.strip() == "apps"


def test_report_json(props_file):
    runner.invoke(app, ["--properties", props_file, "set", "namespace", "staging", "-a", "web"])

    result = runner.invoke(app, ["--properties", props_file, "report", "--format", "json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout)["web"]["computed-namespace"] == "staging"


def test_report_invalid_info_flag(props_file):
    result = runner.invoke(app, ["--properties", props_file, "report", "web", "--info", "bogus"])

    assert result.exit_code == 1
    assert "Invalid flag passed" in result.stdout


def test_report_invalid_format(props_file):
    result = runner.invoke(app, ["--properties", props_file, "report", "--format", "xml"])

    assert result.exit_code == 1
    assert "Invalid format" in result.stdout


def test_set_invalid_key(props_file):
    result = runner.invoke(app, ["--properties", props_file, "set", "colour", "blue"])

    assert result.exit_code == 1
    assert "Invalid global property" in result.stdout


def test_properties_from_environment(props_file):
    result = runner.invoke(
        app, ["set", "network-interface", "ens3"], env={"K3S_MGR_PROPERTIES": props_file}
    )

    assert result.exit_code == 0
    assert "network-interface: ens3" in open(props_file).read()


def test_initialize(props_file, local_paths):
    identity = NodeIdentity(name="ip-10-0-0-5-0001020304", role=NodeRole.SERVER)
    with patch("k3s_manager.bootstrap.BootstrapOrchestrator") as orchestrator:
        orchestrator.return_value.run.return_value = identity
        result = runner.invoke(
            app, ["--properties", props_file, "initialize", "--taint-scheduling"]
        )

    assert result.exit_code == 0
    assert "ip-10-0-0-5-0001020304" in result.stdout
    orchestrator.return_value.run.assert_called_once_with(taint_scheduling=True)


def test_initialize_already_installed(props_file, local_paths):
    with patch("k3s_manager.bootstrap.BootstrapOrchestrator") as orchestrator:
        orchestrator.return_value.run.side_effect = AlreadyInitialized(
            "k3s already installed, cannot re-initialize k3s"
        )
        result = runner.invoke(app, ["--properties", props_file, "initialize"])

    assert result.exit_code == 1
    assert "already installed" in result.stdout


def test_initialize_cancelled(props_file, local_paths):
    with patch("k3s_manager.bootstrap.BootstrapOrchestrator") as orchestrator:
        orchestrator.return_value.run.side_effect = OperationCancelled("Operation cancelled")
        result = runner.invoke(app, ["--properties", props_file, "initialize"])

    assert result.exit_code == 130
    assert "Cancelled" in result.stdout


def test_cluster_add(props_file, local_paths):
    node = ClusterNode(name="ip-server-2-0001020304", ready=True)
    with patch("k3s_manager.join.JoinOrchestrator") as orchestrator:
        orchestrator.return_value.run.return_value = node
        result = runner.invoke(
            app,
            [
                "--properties",
                props_file,
                "cluster-add",
                "ssh://root@server-2",
                "--role",
                "server",
                "--insecure-allow-unknown-hosts",
            ],
        )

    assert result.exit_code == 0
    assert "ip-server-2-0001020304 joined" in result.stdout
    orchestrator.return_value.run.assert_called_once_with(
        "server", "ssh://root@server-2", True, False
    )


def test_cluster_add_worker_taint_rejected(props_file, local_paths):
    with patch("k3s_manager.join.JoinOrchestrator") as orchestrator:
        orchestrator.return_value.run.side_effect = InvalidCombination(
            "Taint scheduling can only be used on the server role"
        )
        result = runner.invoke(
            app, ["--properties", props_file, "cluster-add", "worker1", "--taint-scheduling"]
        )

    assert result.exit_code == 1
    assert "server role" in result.stdout


def test_cluster_list_not_installed(local_paths):
    result = runner.invoke(app, ["cluster-list"])

    assert result.exit_code == 1
    assert "k3s not installed" in result.stdout


def test_cluster_list_json(installed_paths):
    nodes = [ClusterNode(name="ip-10-0-0-5-aa", ready=True, roles=["control-plane"])]
    with (
        patch("k3s_manager.models.cluster.K3sPaths", return_value=installed_paths),
        patch("k3s_manager.kube.ClusterClient.list_nodes", return_value=nodes),
    ):
        result = runner.invoke(app, ["cluster-list", "--format", "json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [
        {"name": "ip-10-0-0-5-aa", "ready": True, "roles": ["control-plane"], "version": ""}
    ]


def test_cluster_remove_requires_confirmation():
    with patch("k3s_manager.removal.RemovalOrchestrator") as orchestrator:
        result = runner.invoke(app, ["cluster-remove", "ip-worker1-aa"], input="n\n")

    assert result.exit_code == 0
    assert "Operation cancelled" in result.stdout
    orchestrator.assert_not_called()


def test_cluster_remove(local_paths):
    with patch("k3s_manager.removal.RemovalOrchestrator") as orchestrator:
        orchestrator.return_value.run.return_value = "worker1"
        result = runner.invoke(app, ["cluster-remove", "ip-worker1-aa", "--force"])

    assert result.exit_code == 0
    assert "Removed ip-worker1-aa" in result.stdout


def test_cluster_remove_partial(local_paths):
    with patch("k3s_manager.removal.RemovalOrchestrator") as orchestrator:
        orchestrator.return_value.run.side_effect = OrphanedNodeRecord(
            "Node ip-worker1-aa removed from runtime but still present in API",
            node_name="ip-worker1-aa",
        )
        result = runner.invoke(app, ["cluster-remove", "ip-worker1-aa", "--force"])

    assert result.exit_code == 1
    assert "Partial removal" in result.stdout


def test_show_kubeconfig_missing(local_paths):
    result = runner.invoke(app, ["show-kubeconfig"])

    assert result.exit_code == 1
    assert "does not exist" in result.stdout


def test_show_kubeconfig(local_paths):
    local_paths.kubeconfig.write_text("apiVersion: v1\nkind: Config\n")

    result = runner.invoke(app, ["show-kubeconfig"])

    assert result.exit_code == 0
    assert "kind: Config" in result.stdout
