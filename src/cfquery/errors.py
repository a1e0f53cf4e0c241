"""Exception types raised below the CLI."""

from __future__ import annotations


class CfQueryError(Exception):
    """Base class for every error the CLI reports to the user."""


class ConfigurationError(CfQueryError):
    pass


class TransportError(CfQueryError):
    """HTTP or network failure talking to the API."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        self.message = message
        if status_code is not None:
            message = f"API Error ({status_code}): {message}"
        super().__init__(message)


class UpstreamError(CfQueryError):
    """The API answered 2xx but reported ``success: false``."""


class OperationError(CfQueryError):
    """A lower-level failure, prefixed with the operation that failed."""


class InvalidInputError(CfQueryError):
    """Missing prompt or model."""


class ConversationNotFoundError(CfQueryError):
    pass


class StorageError(CfQueryError):
    """The local sqlite store could not be opened, read or written."""
