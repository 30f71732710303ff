"""Typed access to the cluster's Kubernetes API."""

from pathlib import Path
from typing import Any

import requests
import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.dynamic import DynamicClient

from k3s_manager.exceptions import KubernetesError, NodeNotFound
from k3s_manager.logging_config import get_logger
from k3s_manager.models.node import ClusterNode

logger = get_logger(__name__)

MANIFEST_DOWNLOAD_TIMEOUT = 60


def _api_error(action: str, e: ApiException) -> KubernetesError:
    return KubernetesError(f"Unable to {action}: {e.reason}", e.body or None, status=e.status)


class ClusterClient:
    """Node and manifest operations against the Kubernetes API.

    The underlying API clients are created on first use from ``kubeconfig``,
    so constructing this object never touches the network.
    """

    def __init__(self, kubeconfig: str | Path, api_client: client.ApiClient | None = None):
        self.kubeconfig = Path(kubeconfig)
        self._api_client = api_client
        self._core = None
        self._dynamic = None

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            try:
                self._api_client = config.new_client_from_config(config_file=str(self.kubeconfig))
            except Exception as e:
                raise KubernetesError(
                    f"Unable to create kubernetes client: {e}",
                    f"Make sure k3s is running and {self.kubeconfig} is readable",
                )
        return self._api_client

    @property
    def core(self) -> client.CoreV1Api:
        if self._core is None:
            self._core = client.CoreV1Api(self.api_client)
        return self._core

    @property
    def dynamic(self) -> DynamicClient:
        if self._dynamic is None:
            self._dynamic = DynamicClient(self.api_client)
        return self._dynamic

    def list_nodes(self) -> list[ClusterNode]:
        try:
            response = self.core.list_node()
        except ApiException as e:
            raise _api_error("list nodes", e)
        return [ClusterNode.from_kubernetes(node) for node in response.items]

    def get_node(self, name: str) -> ClusterNode:
        """Return a node by name.

        Raises:
            NodeNotFound: If no node has that name
            KubernetesError: For any other API failure
        """
        try:
            node = self.core.read_node(name)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(f"Node {name} not found", status=404)
            raise _api_error(f"get node {name}", e)
        return ClusterNode.from_kubernetes(node)

    def delete_node(self, name: str) -> None:
        try:
            self.core.delete_node(name)
        except ApiException as e:
            raise _api_error(f"delete node {name}", e)
        logger.info(f"Deleted node {name}")

    def _patch_metadata(self, name: str, field: str, key: str, value: str) -> None:
        body = {"metadata": {field: {key: value}}}
        try:
            self.core.patch_node(name, body)
        except ApiException as e:
            if e.status == 404:
                raise NodeNotFound(f"Node {name} not found", status=404)
            raise _api_error(f"patch node {name}", e)

    def label_node(self, name: str, key: str, value: str) -> None:
        logger.debug(f"Labeling node {name} {key}={value}")
        self._patch_metadata(name, "labels", key, value)

    def annotate_node(self, name: str, key: str, value: str) -> None:
        logger.debug(f"Annotating node {name} {key}={value}")
        self._patch_metadata(name, "annotations", key, value)

    def _load_documents(self, source: str) -> list[dict[str, Any]]:
        if source.startswith(("http://", "https://")):
            logger.debug(f"Downloading manifest {source}")
            try:
                response = requests.get(source, timeout=MANIFEST_DOWNLOAD_TIMEOUT)
            except requests.RequestException as e:
                raise KubernetesError(f"Unable to download manifest {source}", str(e))
            if response.status_code != 200:
                raise KubernetesError(
                    f"Invalid status code for manifest {source}: {response.status_code}"
                )
            text = response.text
        else:
            try:
                text = Path(source).read_text()
            except OSError as e:
                raise KubernetesError(f"Unable to read manifest {source}", str(e))

        try:
            return [doc for doc in yaml.safe_load_all(text) if doc]
        except yaml.YAMLError as e:
            raise KubernetesError(f"Unable to parse manifest {source}", str(e))

    def apply_objects(self, documents: list[dict[str, Any]]) -> None:
        """Create each object, patching it instead when it already exists."""
        for doc in documents:
            if not doc.get("kind") or not doc.get("apiVersion"):
                continue

            kind = doc["kind"]
            name = doc.get("metadata", {}).get("name")
            try:
                resource = self.dynamic.resources.get(api_version=doc["apiVersion"], kind=kind)
            except Exception as e:
                raise KubernetesError(f"Unknown resource type {doc['apiVersion']}/{kind}", str(e))

            namespace = None
            if resource.namespaced:
                namespace = doc.get("metadata", {}).get("namespace", "default")

            try:
                logger.debug(f"Applying {kind}/{name}")
                resource.create(body=doc, namespace=namespace)
            except ApiException as e:
                if e.status != 409:
                    raise _api_error(f"apply {kind}/{name}", e)
                try:
                    resource.patch(
                        body=doc,
                        name=name,
                        namespace=namespace,
                        content_type="application/merge-patch+json",
                    )
                except ApiException as patch_error:
                    raise _api_error(f"apply {kind}/{name}", patch_error)

    def apply_manifest(self, source: str) -> None:
        """Apply every object in a manifest URL or local file."""
        self.apply_objects(self._load_documents(source))
