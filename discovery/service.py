import sys
import threading
import time
from enum import Enum
from typing import Callable, Optional

from client.client import Client
from common.config import SERVER_PORT, SOCKET_SEARCH_TIMEOUT
from common.errors import NoAddressError, SyncServiceError
from common.log import service_log
from common.netinfo import get_local_address
from discovery.scanner import scan_network
from server.server import Server


class Role(Enum):
    # no server on the network: we host one and talk to it ourselves
    SERVER_CLIENT = "server+client"
    # joined someone else's server
    CLIENT = "client"


class SyncService:
    """
    Result of discovery: at most one Server (None when we joined an existing
    server) and exactly one Client.
    """

    def __init__(self, server: Optional[Server], client: Client):
        self.server = server
        self.client = client

    @property
    def role(self) -> Role:
        return Role.SERVER_CLIENT if self.server is not None else Role.CLIENT

    def close(self):
        self.client.close()
        if self.server is not None:
            self.server.close()


class DiscoveryCoordinator:
    """
    Owns the one SyncService of this process.

    get_service() runs discovery the first time and hands back the cached
    service afterwards. Concurrent first calls wait on the same lock, so the
    listening port is only ever bound once.
    """

    def __init__(
        self,
        port: int = SERVER_PORT,
        *,
        resolve_address: Callable[[], Optional[str]] = get_local_address,
        scan: Callable = scan_network,
        search_timeout: float = SOCKET_SEARCH_TIMEOUT,
    ):
        self.port = port
        self.resolve_address = resolve_address
        self.scan = scan
        self.search_timeout = search_timeout

        self.log = service_log()
        self._lock = threading.Lock()
        self._instance: Optional[SyncService] = None

    def get_service(self) -> SyncService:
        self.log.verbose("GET_SERVICE")
        with self._lock:
            if self._instance is None:
                self.log.verbose("NOT_INITIALIZED")
                self._instance = self._make_service()
            return self._instance

    def _make_service(self) -> SyncService:
        """
        1. Resolve this device's IP; without one there is nothing to do.
        2. Scan the local /24 for a server already on our port.
        3. Found one: connect a client to it.
        4. Found none: start a server here and connect our own client to it.
        """
        self.log.verbose("CREATING")

        my_ip = self.resolve_address()
        self.log.info("LOCAL_ADDRESS", ip=my_ip or "-")
        if my_ip is None:
            self.log.error("NO_ADDRESS")
            raise NoAddressError("Unable to fetch IP address of device.")

        found = self.scan(my_ip, self.port, timeout=self.search_timeout)

        server = None
        client = None
        try:
            if found is None:
                self.log.info("NO_SERVER_FOUND", action="starting server on this device")
                server = Server.start(my_ip, self.port)
                client = Client.connect(my_ip, server.port)
            else:
                self.log.info("SERVER_FOUND", addr=found)
                client = Client.connect(found.ip, found.port)

            service = SyncService(server, client)
            self.log.ok("CREATED", node_role=service.role.value, server=client.address)
        except BaseException:
            # nothing gets cached, so nothing may stay bound or connected
            if client is not None:
                client.close()
            if server is not None:
                server.close()
            raise
        return service

    @property
    def instance(self) -> Optional[SyncService]:
        return self._instance


def main(argv) -> int:
    if len(argv) > 2:
        print("Usage: python -m discovery.service [PORT]")
        return 1

    port = int(argv[1]) if len(argv) == 2 else SERVER_PORT
    coordinator = DiscoveryCoordinator(port)

    try:
        service = coordinator.get_service()
    except SyncServiceError as e:
        coordinator.log.error("STARTUP_FAILED", reason=e)
        return 1

    try:
        while service.client.is_open:
            time.sleep(1.0)
    except KeyboardInterrupt:
        pass
    finally:
        service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
