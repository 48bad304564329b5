import os

BUFFER_SIZE = 4096

# Liveness exchange
# probe sends this to a candidate
ECHO_REQ = "SYNC_ECHO_REQ"
# a running server answers with this
ECHO_RES = "SYNC_ECHO_RES"

# well-known port shared by every node
SERVER_PORT = int(os.getenv("SYNC_SERVER_PORT", "7890"))

# seconds a probe waits for connect, then again for the reply
SOCKET_SEARCH_TIMEOUT = float(os.getenv("SYNC_SEARCH_TIMEOUT", "1.0"))

# Subnet scan: host octets probed, inclusive
SCAN_FIRST_HOST = 0
SCAN_LAST_HOST = 254
# 0 = launch every probe at once
SCAN_MAX_WORKERS = int(os.getenv("SYNC_SCAN_WORKERS", "0"))

# skip interface detection (tests, multi-homed hosts)
LOCAL_IP_OVERRIDE = os.getenv("SYNC_LOCAL_IP")

# VERBOSE | INFO | WARN | ERROR
LOG_LEVEL = os.getenv("SYNC_LOG_LEVEL", "INFO").upper()

# Syslog mirror
SYSLOG_ENABLED = os.getenv("SYNC_SYSLOG") == "1"
SYSLOG_HOST = os.getenv("SYNC_SYSLOG_HOST", "auto")
SYSLOG_PORT = int(os.getenv("SYNC_SYSLOG_PORT", "5514"))
SYSLOG_FACILITY = 1
