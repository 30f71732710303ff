"""Cluster token and node name allocation."""

import re
import secrets
from collections.abc import Callable

from k3s_manager.logging_config import get_logger
from k3s_manager.models.node import NodeIdentity, NodeRole
from k3s_manager.properties import PropertyStore

logger = get_logger(__name__)

RANDOM_BYTES = 5
MAX_NAME_LENGTH = 63
INVALID_LABEL_CHARS = re.compile(r"[^a-z0-9-]+")


class IdentityAllocator:
    """Derives the shared join token and unique node names.

    Node names are ``ip-<seed>-<suffix>`` where the suffix is 5 random bytes
    in hex. Two allocations can collide with negligible probability; a
    collision is not detected here.
    """

    def __init__(
        self,
        properties: PropertyStore,
        randbytes: Callable[[int], bytes] = secrets.token_bytes,
    ):
        self.properties = properties
        self.randbytes = randbytes

    def _random_hex(self) -> str:
        return self.randbytes(RANDOM_BYTES).hex()

    def current_token(self) -> str:
        """Return the persisted token, or ``""`` when none exists."""
        return self.properties.get_global("token")

    def ensure_token(self) -> str:
        """Return the persisted token, generating and persisting one if absent.

        Raises:
            ConfigurationError: If the new token cannot be persisted
        """
        token = self.current_token()
        if token:
            logger.debug("Reusing existing cluster token")
            return token

        token = self._random_hex()
        self.properties.set("token", token)
        logger.info("Generated new cluster token")
        return token

    def allocate_node_name(self, seed: str) -> str:
        """Return a DNS-label node name derived from an IP or hostname."""
        suffix = self._random_hex()
        # dots, colons (IPv6) and anything else outside a DNS label become dashes
        prefix = INVALID_LABEL_CHARS.sub("-", f"ip-{seed}".lower())
        prefix = prefix[: MAX_NAME_LENGTH - len(suffix) - 1].rstrip("-")
        return f"{prefix}-{suffix}"

    def node_identity(
        self, seed: str, role: NodeRole, origin_host: str | None = None
    ) -> NodeIdentity:
        """Allocate a full identity for a node about to be installed."""
        identity = NodeIdentity(
            name=self.allocate_node_name(seed), role=role, origin_host=origin_host
        )
        logger.debug(f"Allocated node identity {identity.name} ({role.value})")
        return identity
