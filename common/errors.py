class SyncServiceError(Exception):
    pass


class BindError(SyncServiceError):
    """Raised when the server cannot bind its listening socket."""

    def __init__(self, ip: str, port: int, reason: str):
        super().__init__(f"Unable to bind {ip}:{port}: {reason}")
        self.ip = ip
        self.port = port
        self.reason = reason


class NoAddressError(SyncServiceError):
    """Raised when this device's local network address cannot be resolved."""


AddressResolutionError = NoAddressError


class ConnectError(SyncServiceError):
    """Raised when a client cannot reach the peer it was pointed at."""

    def __init__(self, ip: str, port: int, reason: str):
        super().__init__(f"Unable to connect to {ip}:{port}: {reason}")
        self.ip = ip
        self.port = port
        self.reason = reason


class UnexpectedResponseError(SyncServiceError):
    """Raised by a probe when a listener answers with something other than the echo reply."""

    def __init__(self, ip: str, port: int, response: str):
        super().__init__(f"Unexpected response from {ip}:{port}: {response!r}")
        self.ip = ip
        self.port = port
        self.response = response
