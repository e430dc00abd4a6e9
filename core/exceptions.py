"""Domain exceptions for the QR service.

Handlers in ``api.main`` turn these into uniform JSON error bodies.
"""


class QRServiceError(Exception):
    """Base exception for all QR service errors."""

    pass


class QRCodeNotFoundError(QRServiceError):
    """Raised when a code is unknown or deactivated.

    Both cases share one message so callers cannot tell them apart.
    """

    message = "QR code not found or has been deactivated"

    def __init__(self, code_id: str):
        self.code_id = code_id
        super().__init__(self.message)


class IdentifierExhaustedError(QRServiceError):
    """Raised when no unused code identifier could be minted."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Could not allocate a unique code identifier after {attempts} attempts")


class StorageUnavailableError(QRServiceError):
    """Raised when the database cannot serve a request."""

    pass
