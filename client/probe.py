import socket
from typing import Optional

from common.address import Address
from common.config import BUFFER_SIZE, ECHO_REQ, ECHO_RES, SOCKET_SEARCH_TIMEOUT
from common.errors import UnexpectedResponseError
from common.log import client_log


def probe(ip: str, port: int, timeout: float = SOCKET_SEARCH_TIMEOUT) -> Optional[Address]:
    """
    Check whether a sync server is listening at ip:port.

    1. Connect, giving up after `timeout`. No connection -> None.
    2. Send ECHO_REQ and wait (again at most `timeout`) for one frame.
    3. ECHO_RES -> the address is a valid server.

    Any other reply raises UnexpectedResponseError. The socket is closed on
    every path.
    """
    log = client_log(ip)

    try:
        sock = socket.create_connection((ip, port), timeout=timeout)
    except OSError:
        # refused / unreachable / timed out: nobody home
        return None

    with sock:
        log.info("SERVER_FOUND", addr=(ip, port))
        try:
            sock.sendall(ECHO_REQ.encode())
            data = sock.recv(BUFFER_SIZE)
        except (socket.timeout, TimeoutError):
            log.info("PROBE_NO_REPLY", addr=(ip, port), timeout=timeout)
            return None
        except OSError as e:
            log.error("PROBE_SOCKET_ERROR", addr=(ip, port), error=e)
            return None

        if not data:
            log.info("PROBE_REMOTE_CLOSED", addr=(ip, port))
            return None

        response = data.decode("utf-8", errors="replace")
        if response != ECHO_RES:
            log.info("PROBE_UNEXPECTED_RESPONSE", addr=(ip, port), response=repr(response))
            raise UnexpectedResponseError(ip, port, response)

        log.info("PROBE_OK", addr=(ip, port))
        return Address(ip, port)
