import os
import sys
import time

from common import syslog
from common.config import LOG_LEVEL

NO_COLOR = os.getenv("NO_COLOR") == "1"

COL = {
    "RESET": "\033[0m",
    "RED": "\033[31m",
    "GREEN": "\033[32m",
    "YELLOW": "\033[33m",
    "CYAN": "\033[36m",
    "DIM": "\033[2m",
}

LEVELS = {"VERBOSE": 0, "INFO": 1, "OK": 1, "WARN": 2, "ERROR": 3}

_SYSLOG_MIRROR = {
    "INFO": syslog.LOG_INFO,
    "OK": syslog.LOG_INFO,
    "WARN": syslog.LOG_WARN,
    "ERROR": syslog.LOG_ERROR,
}


def _color(s: str, c: str) -> str:
    if NO_COLOR or not sys.stdout.isatty():
        return s
    return f"{COL[c]}{s}{COL['RESET']}"


def enabled(level: str) -> bool:
    return LEVELS.get(level, 1) >= LEVELS.get(LOG_LEVEL, 1)


def format_line(role: str, node_id: str, event: str, level: str = "INFO", /, **fields) -> str:
    ts = f"{time.time():.3f}"
    base = f"ts={ts} role={role} id={node_id} lvl={level} event={event}"

    if fields:
        parts = []
        for k in sorted(fields.keys()):
            v = fields[k]
            if isinstance(v, tuple):
                v = f"{v[0]}:{v[1]}"
            parts.append(f"{k}={v}")
        base += " " + " ".join(parts)
    return base


def log(role: str, node_id: str, event: str, level: str = "INFO", /, **fields):
    mirror = _SYSLOG_MIRROR.get(level)
    if mirror is not None:
        mirror(event, role, node_id, **fields)

    if not enabled(level):
        return

    base = format_line(role, node_id, event, level, **fields)

    if level == "ERROR":
        print(_color(base, "RED"), flush=True)
    elif level == "WARN":
        print(_color(base, "YELLOW"), flush=True)
    elif level == "OK":
        print(_color(base, "GREEN"), flush=True)
    elif level == "VERBOSE":
        print(_color(base, "DIM"), flush=True)
    else:
        print(_color(base, "CYAN"), flush=True)


class NodeLog:
    """log() with the component tag already bound."""

    def __init__(self, role: str, node_id: str = "-"):
        self.role = role
        self.node_id = node_id

    def verbose(self, event: str, /, **fields):
        log(self.role, self.node_id, event, "VERBOSE", **fields)

    def info(self, event: str, /, **fields):
        log(self.role, self.node_id, event, "INFO", **fields)

    def ok(self, event: str, /, **fields):
        log(self.role, self.node_id, event, "OK", **fields)

    def warn(self, event: str, /, **fields):
        log(self.role, self.node_id, event, "WARN", **fields)

    def error(self, event: str, /, **fields):
        log(self.role, self.node_id, event, "ERROR", **fields)


def service_log() -> NodeLog:
    return NodeLog("SyncService")


def server_log(ip: str, port: int) -> NodeLog:
    return NodeLog("SyncService.Server", f"{ip}:{port}")


def client_log(ip: str) -> NodeLog:
    return NodeLog("SyncService.Client", ip)


def connection_log(server_ip: str, client_ip: str) -> NodeLog:
    return NodeLog("SyncService.Connection", f"{server_ip}-{client_ip}")
