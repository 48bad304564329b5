import socket
import sys
import threading
import time

import pytest

from server.server import Server

# Tests bind several 127.0.0.x addresses; only Linux routes the whole /8 to lo.
linux_only = pytest.mark.skipif(sys.platform != "linux", reason="needs 127.0.0.0/8 on loopback")


def free_port(ip="127.0.0.1"):
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((ip, 0))
        return s.getsockname()[1]


def wait_until(predicate, timeout_s=3.0, interval=0.02):
    deadline = time.time() + timeout_s
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def echo_request(addr, payload: bytes, timeout=1.0):
    with socket.create_connection(addr, timeout=timeout) as s:
        s.sendall(payload)
        return s.recv(4096)


class RawListener:
    """
    Plain TCP listener that is *not* a sync server.

    reply=None accepts and stays silent, reply=b"" accepts and hangs up,
    anything else is sent back once per connection.
    """

    def __init__(self, ip, port, reply=None):
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.bind((ip, port))
        self.sock.listen()
        self.sock.settimeout(0.1)
        self.reply = reply
        self.accepted = []
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        while not self._stop.is_set():
            try:
                conn, _ = self.sock.accept()
            except (socket.timeout, TimeoutError):
                continue
            except OSError:
                return
            self.accepted.append(conn)
            if self.reply is None:
                continue
            try:
                conn.recv(4096)
                if self.reply:
                    conn.sendall(self.reply)
                else:
                    conn.close()
            except OSError:
                pass

    def close(self):
        self._stop.set()
        self._thread.join(timeout=1.0)
        self.sock.close()
        for c in self.accepted:
            c.close()


@pytest.fixture
def port():
    return free_port()


@pytest.fixture
def started_servers():
    servers = []

    def _start(ip, port):
        srv = Server.start(ip, port)
        servers.append(srv)
        return srv

    yield _start

    for srv in servers:
        srv.close()


@pytest.fixture
def raw_listeners():
    listeners = []

    def _listen(ip, port, reply=None):
        lst = RawListener(ip, port, reply)
        listeners.append(lst)
        return lst

    yield _listen

    for lst in listeners:
        lst.close()
