from dataclasses import dataclass
from typing import List, Tuple

from common.config import SCAN_FIRST_HOST, SCAN_LAST_HOST


@dataclass(frozen=True)
class Address:
    ip: str
    port: int

    def as_tuple(self) -> Tuple[str, int]:
        return (self.ip, self.port)

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


def subnet_prefix(ip: str) -> str:
    """First three dot-separated octets of an IPv4 string."""
    octets = ip.split(".")
    if len(octets) != 4:
        raise ValueError(f"Not an IPv4 address: {ip!r}")
    return ".".join(octets[:3])


def subnet_hosts(ip: str, first: int = SCAN_FIRST_HOST, last: int = SCAN_LAST_HOST) -> List[str]:
    if not 0 <= first <= last <= 255:
        raise ValueError(f"Invalid host range {first}..{last}")

    prefix = subnet_prefix(ip)
    return [f"{prefix}.{i}" for i in range(first, last + 1)]
