"""
Error types for the order pipeline.

Client-facing errors carry the HTTP status they map to. BrokerUnavailable is
never seen by a caller: the publisher catches it and skips the publish.
"""


class OrderServiceError(Exception):
    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class Unauthenticated(OrderServiceError):
    """No bearer credential was presented."""
    http_status = 401

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class Forbidden(OrderServiceError):
    """A credential was presented but is invalid, expired or mis-signed."""
    http_status = 403

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class InvalidInput(OrderServiceError):
    http_status = 400

    def __init__(self, message: str = "Missing fields"):
        super().__init__(message)


class StoreError(OrderServiceError):
    http_status = 500

    def __init__(self, detail: str = ""):
        # detail is for logs only; clients always see the generic message
        super().__init__("Server error")
        self.detail = detail


class BrokerUnavailable(Exception):
    pass


class BrokerStartupError(Exception):
    """Every broker connection attempt at startup failed."""

    def __init__(self, attempts: int, last_error: Exception | None = None):
        super().__init__(f"could not connect to broker after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
