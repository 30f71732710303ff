"""Pytest configuration and shared fixtures."""

from unittest.mock import Mock

import pytest
from hypothesis import Verbosity, settings

from k3s_manager.executor import CommandExecutor, ExecResult
from k3s_manager.identity import IdentityAllocator
from k3s_manager.kube import ClusterClient
from k3s_manager.models.cluster import K3sPaths
from k3s_manager.properties import PropertyStore

# Configure Hypothesis for property-based testing
settings.register_profile("default", max_examples=100, verbosity=Verbosity.normal)
settings.register_profile("ci", max_examples=1000, verbosity=Verbosity.verbose)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose)

settings.load_profile("default")

K3S_VERSION_OUTPUT = "k3s version v1.28.5+k3s1 (5b2d1271)\ngo version go1.20.12\n"


@pytest.fixture
def properties(tmp_path):
    """Property store backed by a temporary file."""
    return PropertyStore(tmp_path / "properties.yml")


@pytest.fixture
def paths(tmp_path):
    """Paths pointing into a temporary directory, with k3s not installed."""
    return K3sPaths(
        k3s_binary=tmp_path / "bin" / "k3s",
        kubeconfig=tmp_path / "k3s.yaml",
        registry_config=tmp_path / "rancher" / "registries.yaml",
        server_manifests_dir=tmp_path / "manifests",
    )


@pytest.fixture
def installed_paths(paths):
    """Paths with a fake local k3s binary present."""
    paths.k3s_binary.parent.mkdir(parents=True, exist_ok=True)
    paths.k3s_binary.write_text("#!/bin/sh\n")
    return paths


@pytest.fixture
def executor():
    """Executor mock where every command succeeds."""

    def _check(command, args=None, **kwargs):
        if command == "k3s" and args == ["--version"]:
            return ExecResult(stdout=K3S_VERSION_OUTPUT, exit_code=0)
        return ExecResult(exit_code=0)

    mock = Mock(spec=CommandExecutor)
    mock.check.side_effect = _check
    mock.run.return_value = ExecResult(exit_code=0)
    return mock


@pytest.fixture
def cluster():
    """Cluster API client mock."""
    return Mock(spec=ClusterClient)


@pytest.fixture
def allocator(properties):
    """Allocator with a deterministic random source."""
    return IdentityAllocator(properties, randbytes=lambda n: bytes(range(n)))
