"""Exceptions raised by filebot."""


class FilebotError(Exception):
    """Base class for filebot errors."""


class InvalidRequestError(FilebotError, ValueError):
    """Raised when a caller omits a required argument or supplies no work."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


class StorageLocationError(InvalidRequestError):
    """Raised when a storage location cannot be split into bucket and prefix."""
