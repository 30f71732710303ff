"""Property-based tests for node model validation."""

from unittest.mock import MagicMock, Mock

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import ValidationError

from k3s_manager.models.node import (
    REMOTE_HOST_ANNOTATION,
    ClusterNode,
    NodeIdentity,
    NodeRole,
    labels_for_role,
)

DNS_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"


@st.composite
def dns_label(draw):
    """Generate valid DNS labels."""
    length = draw(st.integers(min_value=1, max_value=63))
    if length == 1:
        return draw(st.sampled_from(DNS_CHARS))
    start = draw(st.sampled_from(DNS_CHARS))
    middle = draw(st.text(alphabet=DNS_CHARS + "-", min_size=length - 2, max_size=length - 2))
    end = draw(st.sampled_from(DNS_CHARS))
    return start + middle + end


@given(name=dns_label(), role=st.sampled_from(list(NodeRole)))
def test_valid_names_accepted(name, role):
    identity = NodeIdentity(name=name, role=role)

    assert identity.name == name
    assert not identity.remotely_managed


@given(name=dns_label())
def test_overlong_names_rejected(name):
    with pytest.raises(ValidationError):
        NodeIdentity(name=name + "-" + "a" * 63, role=NodeRole.WORKER)


@pytest.mark.parametrize("name", ["", "-leading", "trailing-", "Upper", "dot.ted", "under_score"])
def test_invalid_names_rejected(name):
    with pytest.raises(ValidationError):
        NodeIdentity(name=name, role=NodeRole.SERVER)


def test_role_labels():
    assert labels_for_role(NodeRole.SERVER) == {"svccontroller.k3s.cattle.io/enablelb": "true"}
    assert labels_for_role(NodeRole.WORKER) == {"node-role.kubernetes.io/role": "worker"}


def test_role_labels_are_copies():
    labels_for_role(NodeRole.SERVER)["extra"] = "x"

    assert "extra" not in labels_for_role(NodeRole.SERVER)


def _v1_node(name, conditions, labels=None, annotations=None):
    node = MagicMock()
    node.metadata.name = name
    node.metadata.labels = labels
    node.metadata.annotations = annotations
    node.status.conditions = conditions
    node.status.node_info.kubelet_version = "v1.28.5+k3s1"
    return node


@given(
    statuses=st.lists(st.sampled_from(["True", "False", "Unknown"]), max_size=3),
    roles=st.sets(st.sampled_from(["control-plane", "etcd", "master"])),
)
def test_from_kubernetes(statuses, roles):
    conditions = [Mock(type="MemoryPressure", status="False")]
    conditions += [Mock(type="Ready", status=s) for s in statuses]
    labels = {f"node-role.kubernetes.io/{role}": "true" for role in roles}
    labels["kubernetes.io/hostname"] = "ignored"

    node = ClusterNode.from_kubernetes(
        _v1_node("ip-a", conditions, labels, {REMOTE_HOST_ANNOTATION: "host-a"})
    )

    assert node.ready == (bool(statuses) and statuses[-1] == "True")
    assert node.roles == sorted(roles)
    assert node.remote_host == "host-a"
    assert "remote_host" not in node.model_dump()


def test_from_kubernetes_without_metadata():
    node = ClusterNode.from_kubernetes(_v1_node("ip-a", None))

    assert node.ready is False
    assert node.roles == []
    assert node.remote_host == ""
