import socket
from typing import Optional

from common import config


def get_local_address() -> Optional[str]:
    """
    LAN IPv4 address of this device, or None when no interface has one.

    The UDP connect never sends anything; it only makes the OS pick the
    outbound interface.
    """
    if config.LOCAL_IP_OVERRIDE:
        return config.LOCAL_IP_OVERRIDE

    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
    except OSError:
        return None
    finally:
        s.close()

    if not ip or ip == "0.0.0.0":
        return None
    return ip
