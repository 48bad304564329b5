import errno
import socket
import sys
import threading
import time
from typing import Tuple

from common.config import SERVER_PORT
from common.errors import BindError
from common.log import server_log
from server.connection import ConnectionHandler, ConnectionRegistry


class Server:
    """
    Sync server: one listening TCP socket, one ConnectionHandler per accepted
    connection. The accept loop runs on its own thread, so start() returns as
    soon as the socket is bound.
    """

    def __init__(self, sock: socket.socket, ip: str, port: int):
        self.sock = sock
        self.ip = ip
        self.port = port
        self.log = server_log(ip, port)

        # open accepted connections
        self.connections = ConnectionRegistry()

        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._accept_loop,
            name=f"sync-server-{ip}:{port}",
            daemon=True,
        )

    @property
    def address(self) -> Tuple[str, int]:
        return (self.ip, self.port)

    @classmethod
    def start(cls, ip: str, port: int = SERVER_PORT) -> "Server":
        log = server_log(ip, port)
        log.verbose("STARTING")

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.bind((ip, port))
            sock.listen()
        except OSError as e:
            sock.close()
            if e.errno == errno.EADDRINUSE:
                log.error("ALREADY_RUNNING", reason="Another instance of server already running. Exiting.")
            else:
                log.error("START_FAILED", reason=e)
            raise BindError(ip, port, str(e)) from e

        # port 0 means "any free port"
        port = sock.getsockname()[1]

        # allow the loop to notice close() even when nobody connects
        sock.settimeout(0.2)

        server = cls(sock, ip, port)
        server._thread.start()
        server.log.verbose("STARTED")
        return server

    def _accept_loop(self):
        while not self._stopped.is_set():
            try:
                conn, addr = self.sock.accept()
            except (socket.timeout, TimeoutError):
                continue
            except OSError as e:
                if not self._stopped.is_set():
                    self.log.error("ACCEPT_FAILED", error=e)
                return

            conn.settimeout(None)
            handler = ConnectionHandler(conn, self.address, addr, self.connections)
            self.connections.add(handler)
            handler.start()
            self.log.info("CLIENT_CONNECTED", peer=addr, open_connections=len(self.connections))

    def close(self):
        if self._stopped.is_set():
            return
        self.log.info("STOPPING")
        self._stopped.set()
        self.sock.close()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

        for conn in self.connections.snapshot():
            conn.close()
            conn.join(timeout=1.0)


if __name__ == "__main__":
    if len(sys.argv) != 3:
        print("Usage: python -m server.server <IP> <PORT>")
        sys.exit(1)

    ip = sys.argv[1]
    port = int(sys.argv[2])

    try:
        server = Server.start(ip, port)
    except BindError:
        sys.exit(1)

    try:
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        server.close()
