"""
Default network and device descriptor providers.

These stand in for platform services: the network provider answers "is
there a route, and can we reach the internet?", the device provider
describes the host the run executed on.
"""
from __future__ import annotations

import asyncio
import logging
import platform
import socket
from typing import Optional

from .models import DeviceInfo, NetworkInfo

logger = logging.getLogger(__name__)

_REACHABILITY_HOST = "1.1.1.1"
_REACHABILITY_PORT = 443
_REACHABILITY_TIMEOUT = 3.0


def _local_address() -> Optional[str]:
    """Address of the interface holding the default route, if any.

    Connecting a UDP socket only selects a route; no packet is sent.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sock.connect((_REACHABILITY_HOST, 80))
        return sock.getsockname()[0]
    except OSError:
        return None
    finally:
        sock.close()


async def _internet_reachable() -> bool:
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(_REACHABILITY_HOST, _REACHABILITY_PORT),
            timeout=_REACHABILITY_TIMEOUT,
        )
    except (asyncio.TimeoutError, OSError) as exc:
        logger.debug("Reachability check failed: %s", exc)
        return False
    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def get_network_info() -> NetworkInfo:
    address = _local_address()
    if address is None:
        return NetworkInfo(connection_type="unknown", is_connected=False)

    reachable = await _internet_reachable()
    return NetworkInfo(
        connection_type="unknown",
        is_connected=True,
        is_internet_reachable=reachable,
        ip_address=address,
    )


def get_device_info() -> DeviceInfo:
    from . import __version__

    return DeviceInfo(
        platform=platform.system().lower() or "unknown",
        model=platform.machine() or "Unknown",
        os_version=platform.release(),
        app_version=__version__,
    )
