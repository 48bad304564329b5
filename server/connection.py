import itertools
import socket
import threading
from typing import Dict, List, Tuple

from common.config import BUFFER_SIZE, ECHO_REQ, ECHO_RES
from common.log import connection_log

_ids = itertools.count(1)


class ConnectionRegistry:
    """
    Open server-side connections, keyed by connection id.

    Handlers add themselves once when accepted and remove themselves once
    when they close, so len() is always the number of live connections.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._connections: Dict[int, "ConnectionHandler"] = {}

    def add(self, conn: "ConnectionHandler"):
        with self._lock:
            if conn.conn_id in self._connections:
                raise ValueError(f"Connection {conn.conn_id} already registered")
            self._connections[conn.conn_id] = conn

    def remove(self, conn: "ConnectionHandler") -> bool:
        with self._lock:
            return self._connections.pop(conn.conn_id, None) is not None

    def snapshot(self) -> List["ConnectionHandler"]:
        with self._lock:
            return list(self._connections.values())

    def __len__(self):
        with self._lock:
            return len(self._connections)

    def __contains__(self, conn):
        with self._lock:
            return getattr(conn, "conn_id", None) in self._connections


class ConnectionHandler:
    """
    One accepted connection: Open -> Closed.

    Every inbound frame is handled on its own: ECHO_REQ gets ECHO_RES back on
    the same socket, anything else is only logged (sync payloads don't exist
    yet). A socket error or remote disconnect closes the connection and drops
    it from the registry.
    """

    def __init__(self, sock: socket.socket, server_addr: Tuple[str, int], peer_addr: Tuple[str, int],
                 registry: ConnectionRegistry):
        self.conn_id = next(_ids)
        self.sock = sock
        self.server_addr = server_addr
        self.peer_addr = peer_addr
        self.registry = registry
        self.log = connection_log(server_addr[0], peer_addr[0])

        self._state_lock = threading.Lock()
        self.closed = False

        self._thread = threading.Thread(
            target=self._run,
            name=f"sync-conn-{self.conn_id}",
            daemon=True,
        )

    def start(self):
        self._thread.start()

    def _run(self):
        while not self.closed:
            try:
                data = self.sock.recv(BUFFER_SIZE)
            except OSError as e:
                if not self.closed:
                    self.log.error("SOCKET_ERROR", peer=self.peer_addr, error=e)
                self.close()
                return

            if not data:
                if not self.closed:
                    self.log.error("CLIENT_LEFT", peer=self.peer_addr)
                self.close()
                return

            self.handle_frame(data)

    def handle_frame(self, data: bytes):
        msg = data.decode("utf-8", errors="replace")
        self.log.verbose("RECEIVED", peer=self.peer_addr, msg=repr(msg))

        if msg == ECHO_REQ:
            try:
                self.sock.sendall(ECHO_RES.encode("utf-8"))
            except OSError as e:
                self.log.error("SOCKET_ERROR", peer=self.peer_addr, error=e)
                self.close()
        else:
            self.log.info("UNHANDLED_MESSAGE", peer=self.peer_addr, size=len(data))

    def close(self):
        with self._state_lock:
            if self.closed:
                return
            self.closed = True

        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

        self.registry.remove(self)
        self.log.verbose("CLOSED", peer=self.peer_addr, open_connections=len(self.registry))

    def join(self, timeout=None):
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)
