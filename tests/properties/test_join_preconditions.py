"""Property-based tests for join input validation.

Invalid joins must be refused before any command runs on either host.
"""

from pathlib import Path
from unittest.mock import Mock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from k3s_manager.exceptions import InvalidCombination, InvalidRole, MissingToken
from k3s_manager.executor import CommandExecutor
from k3s_manager.join import JoinOrchestrator
from k3s_manager.kube import ClusterClient
from k3s_manager.models.cluster import K3sPaths
from k3s_manager.properties import PropertyStore

remote_hosts = st.text(min_size=1, max_size=60)


def _orchestrator(token):
    properties = Mock(spec=PropertyStore)
    properties.get_global.return_value = token
    executor = Mock(spec=CommandExecutor)
    # any existing file stands in for the local k3s binary
    paths = K3sPaths(k3s_binary=Path(__file__))
    return JoinOrchestrator(properties, executor, Mock(spec=ClusterClient), paths=paths), executor


@given(remote_host=remote_hosts, allow_unknown=st.booleans())
def test_worker_taint_always_rejected(remote_host, allow_unknown):
    orchestrator, executor = _orchestrator("abc123")

    with pytest.raises(InvalidCombination):
        orchestrator.run("worker", remote_host, allow_unknown, taint_scheduling=True)

    assert executor.mock_calls == []


@given(
    role=st.text(max_size=20).filter(lambda r: r not in ("server", "worker")),
    remote_host=remote_hosts,
    taint=st.booleans(),
)
def test_unknown_roles_rejected(role, remote_host, taint):
    orchestrator, executor = _orchestrator("abc123")

    with pytest.raises(InvalidRole):
        orchestrator.run(role, remote_host, taint_scheduling=taint)

    assert executor.mock_calls == []


@given(role=st.sampled_from(["server", "worker"]), remote_host=remote_hosts)
def test_missing_token_rejected(role, remote_host):
    orchestrator, executor = _orchestrator("")

    with pytest.raises(MissingToken):
        orchestrator.run(role, remote_host)

    assert executor.mock_calls == []
