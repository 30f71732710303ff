"""Local network interface address discovery."""

import ipaddress
import json
import subprocess

from k3s_manager.exceptions import NetworkConfigError
from k3s_manager.logging_config import get_logger

logger = get_logger(__name__)


def interface_ipv4(interface: str) -> str:
    """Return the IPv4 address assigned to ``interface``.

    When the interface carries several addresses the first one reported
    wins.

    Raises:
        NetworkConfigError: If the interface is missing or has no IPv4 address
    """
    logger.debug(f"Resolving IPv4 address for network interface {interface}")

    try:
        result = subprocess.run(
            ["ip", "-json", "-4", "addr", "show", "dev", interface],
            capture_output=True,
            text=True,
            check=True,
            timeout=10,
        )
    except FileNotFoundError:
        raise NetworkConfigError(
            f"Unable to get network addresses for interface {interface}",
            "The 'ip' command (iproute2) is not installed or not in PATH",
        )
    except subprocess.CalledProcessError as e:
        raise NetworkConfigError(
            f"Unable to get network addresses for interface {interface}",
            f"{e.stderr.strip() if e.stderr else 'ip exited with ' + str(e.returncode)}\n\n"
            "Set the interface with: k3s-mgr set network-interface <name>",
        )
    except subprocess.TimeoutExpired:
        raise NetworkConfigError(
            f"Timed out reading network addresses for interface {interface}"
        )

    try:
        interfaces = json.loads(result.stdout or "[]")
    except json.JSONDecodeError as e:
        raise NetworkConfigError(
            f"Unable to parse network addresses for interface {interface}", str(e)
        )

    for entry in interfaces:
        if entry.get("ifname") != interface:
            continue
        for addr in entry.get("addr_info", []):
            local = addr.get("local")
            if addr.get("family") != "inet" or not local:
                continue
            try:
                ipaddress.IPv4Address(local)
            except ValueError:
                continue
            logger.debug(f"Interface {interface} has address {local}")
            return local

    raise NetworkConfigError(
        f"Unable to determine server ip address from network-interface {interface}",
        "Set the interface with: k3s-mgr set network-interface <name>",
    )
