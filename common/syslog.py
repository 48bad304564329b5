# common/syslog.py
import socket
from datetime import datetime, timezone

from common.config import (
    SYSLOG_ENABLED,
    SYSLOG_HOST,
    SYSLOG_PORT,
    SYSLOG_FACILITY,
)
from common.netinfo import get_local_address

# ------------------------------
# UDP socket (reused)
# ------------------------------
_sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)


# ------------------------------
# Helpers
# ------------------------------
def _ts():
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def _pri(severity: int):
    # PRI = facility * 8 + severity
    return (SYSLOG_FACILITY * 8) + severity


def _fmt(v):
    if v is None:
        return "-"
    if isinstance(v, tuple) and len(v) == 2:
        return f"{v[0]}:{v[1]}"
    return str(v)


def format_syslog(severity: int, level: str, message: str, role: str, node_id: str, /, **fields):
    """Build one RFC5424 line. HOSTNAME carries the node id, APP-NAME the component role."""
    payload_parts = [
        f"event={message}",
        f"level={level}",
    ]
    for k in sorted(fields.keys()):
        payload_parts.append(f"{k}={_fmt(fields[k])}")

    payload = " ".join(payload_parts)

    return (
        f"<{_pri(severity)}>1 "
        f"{_ts()} "
        f"{node_id or '-'} "
        f"{role or 'lan-sync'} "
        f"- - - "
        f"{payload}"
    )


# ------------------------------
# Core syslog sender
# ------------------------------
def _send_syslog(level: str, severity: int, message: str, role: str, node_id: str, /, **fields):
    if not SYSLOG_ENABLED:
        return

    host = SYSLOG_HOST
    if host == "auto":
        host = get_local_address() or "127.0.0.1"

    syslog_msg = format_syslog(severity, level, message, role, node_id, **fields)

    try:
        _sock.sendto(
            syslog_msg.encode("utf-8", errors="replace"),
            (host, SYSLOG_PORT),
        )
    except OSError:
        pass


# ------------------------------
# PUBLIC API
# ------------------------------
def LOG_INFO(message: str, role: str = "", node_id: str = "", /, **fields):
    _send_syslog("INFO", 6, message, role, node_id, **fields)


def LOG_WARN(message: str, role: str = "", node_id: str = "", /, **fields):
    _send_syslog("WARN", 4, message, role, node_id, **fields)


def LOG_ERROR(message: str, role: str = "", node_id: str = "", /, **fields):
    _send_syslog("ERROR", 3, message, role, node_id, **fields)
