import queue
import socket
import sys
import threading
from typing import Optional

from common.address import Address
from common.config import BUFFER_SIZE, ECHO_REQ, ECHO_RES, SERVER_PORT
from common.errors import ConnectError
from common.log import client_log


class Client:
    """
    Client side of the sync channel.

    Inbound frames are logged and queued for recv(). When the server goes
    away (or the socket errors) the socket is destroyed; there is no
    reconnect.
    """

    def __init__(self, sock: socket.socket, address: Address):
        self.sock = sock
        self.address = address
        self.log = client_log(address.ip)

        self._inbox = queue.Queue()
        self._closed = threading.Event()
        self._send_lock = threading.Lock()

        self._reader = threading.Thread(
            target=self._read_loop,
            name=f"sync-client-{address}",
            daemon=True,
        )

    @classmethod
    def connect(cls, ip: str, port: int = SERVER_PORT, timeout: Optional[float] = None) -> "Client":
        log = client_log(ip)
        log.verbose("STARTING", addr=(ip, port))

        try:
            sock = socket.create_connection((ip, port), timeout=timeout)
        except OSError as e:
            log.error("CONNECT_FAILED", addr=(ip, port), error=e)
            raise ConnectError(ip, port, str(e)) from e

        # timeout only bounds the connect; reads block until data or close
        sock.settimeout(None)

        client = cls(sock, Address(ip, port))
        client._reader.start()
        log.verbose("STARTED", addr=(ip, port))
        return client

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    def _read_loop(self):
        while not self._closed.is_set():
            try:
                data = self.sock.recv(BUFFER_SIZE)
            except OSError as e:
                if not self._closed.is_set():
                    self.log.error("SOCKET_ERROR", addr=self.address.as_tuple(), error=e)
                self._destroy()
                return

            if not data:
                self.log.info("SERVER_CLOSED", addr=self.address.as_tuple())
                self._destroy()
                return

            msg = data.decode("utf-8", errors="replace")
            self.log.verbose("RECEIVED", addr=self.address.as_tuple(), msg=repr(msg))
            self._inbox.put(msg)

    def send(self, msg: str):
        if not self.is_open:
            raise ConnectionError(f"Client for {self.address} is closed")

        with self._send_lock:
            self.sock.sendall(msg.encode("utf-8"))
        self.log.verbose("SENT", addr=self.address.as_tuple(), msg=repr(msg))

    def recv(self, timeout: Optional[float] = None) -> Optional[str]:
        """Next inbound frame, or None if nothing arrives within timeout."""
        try:
            return self._inbox.get(timeout=timeout)
        except queue.Empty:
            return None

    def ping(self, timeout: float = 1.0) -> bool:
        """Send ECHO_REQ and wait for ECHO_RES. Frames already queued are discarded first."""
        while True:
            try:
                self._inbox.get_nowait()
            except queue.Empty:
                break

        self.send(ECHO_REQ)
        return self.recv(timeout=timeout) == ECHO_RES

    def _destroy(self):
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self.sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.sock.close()

    def close(self):
        self.log.verbose("CLOSING", addr=self.address.as_tuple())
        self._destroy()
        if self._reader.is_alive() and self._reader is not threading.current_thread():
            self._reader.join(timeout=1.0)


if __name__ == "__main__":
    if len(sys.argv) not in (2, 3):
        print("Usage: python -m client.client <SERVER_IP> [PORT]")
        sys.exit(1)

    server_ip = sys.argv[1]
    port = int(sys.argv[2]) if len(sys.argv) == 3 else SERVER_PORT

    client = Client.connect(server_ip, port)
    print(f"Connected to {client.address}. 'ping' checks liveness, anything else is sent as-is.")

    while client.is_open:
        try:
            text = input(">> ")
        except (EOFError, KeyboardInterrupt):
            break

        if text == "ping":
            print("alive" if client.ping() else "no echo")
        else:
            client.send(text)

    client.close()
