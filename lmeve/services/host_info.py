"""Host identity for configuration screens"""

from typing import Any, Dict, List
import logging
import socket

from lmeve.services.esi_client import EsiClient

logger = logging.getLogger(__name__)


def local_addresses(hostname: str) -> List[str]:
    """Addresses the hostname resolves to, best-effort"""
    try:
        _, _, addresses = socket.gethostbyname_ex(hostname)
    except OSError as e:
        logger.debug(f"Cannot resolve {hostname}: {str(e)}")
        return []
    unique = []
    for address in addresses:
        if address and address not in unique:
            unique.append(address)
    return unique


def server_info(esi: EsiClient) -> Dict[str, Any]:
    """Hostname, local addresses and public IP (None when the lookup does not answer)"""
    hostname = socket.gethostname()
    return {
        "hostname": hostname,
        "localAddrs": local_addresses(hostname),
        "publicIp": esi.public_ip(),
    }
