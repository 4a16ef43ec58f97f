"""Find the host address the deployed app should stream its logs to"""
import logging
import subprocess
from typing import Optional

from devicerun.core.protocols import NetworkProvider

logger = logging.getLogger(__name__)

# macOS Wi-Fi / Ethernet interfaces, in the order they are usually assigned
CANDIDATE_INTERFACES = ('en0', 'en1', 'en2', 'en3', 'en4')


def detect_local_address(network: NetworkProvider) -> Optional[str]:
    """
    LAN address of this host, or None if none can be found.

    Tries the usual macOS interfaces first, then whichever interface carries
    the default route. Lookup errors count as "not found"; this must never
    stop a build.
    """
    for iface in CANDIDATE_INTERFACES:
        try:
            address = network.interface_address(iface)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Address lookup on %s failed: %s", iface, e)
            continue
        if address:
            return address

    try:
        return network.default_route_address()
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Default route lookup failed: %s", e)
        return None


def resolve_relay_address(
    network: NetworkProvider,
    port: int,
    explicit: Optional[str] = None
) -> Optional[str]:
    """
    host:port to embed in the app for log relay.

    Args:
        network: Network provider used for detection
        port: Log relay port
        explicit: Operator-supplied address; used as-is when given

    Returns:
        "host:port", or None when no address could be detected
    """
    if explicit:
        return explicit
    host = detect_local_address(network)
    if not host:
        return None
    return f"{host}:{port}"
