"""
Hrana SDK Exceptions.

Custom exception hierarchy for the SDK.
"""


class HranaError(Exception):
    """Base exception for all Hrana SDK errors."""

    def __init__(self, message: str, code: str | int | None = None):
        self.message = message
        self.code = code
        super().__init__(message)


class ConnectionError(HranaError):
    """Raised when the transport fails or the server response is unusable.

    Covers send/open failures, dead streams, lost batons and malformed
    response shapes.
    """

    pass


class TimeoutError(ConnectionError):
    """Raised when a transport operation times out."""

    pass


class AuthenticationError(ConnectionError):
    """Raised when the server rejects the handshake credentials."""

    pass


class ServerError(HranaError):
    """Raised when the server returns a well-formed error result."""

    def __init__(self, message: str, code: str | int | None = None, sql: str | None = None):
        self.sql = sql
        super().__init__(message, code)


class MisuseError(HranaError):
    """Raised when the caller violates a precondition."""

    pass


class TransactionError(MisuseError):
    """Raised when a transaction handle is used outside its lifetime."""

    pass
