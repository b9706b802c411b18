"""
Domain error taxonomy for DocVault.

Every public service operation either returns a result or raises exactly one
of these errors. The HTTP layer maps them to status codes through
``http_status``; nothing below the API layer raises ``HTTPException``.
"""


class DocVaultError(Exception):
    """Base class for all domain errors."""

    http_status = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInputError(DocVaultError):
    """Bad file type, size or payload shape. Not retryable."""

    http_status = 400


class ForbiddenError(DocVaultError):
    """Ownership or role mismatch."""

    http_status = 403


class NotFoundError(DocVaultError):
    """Missing document, job, user or stored object."""

    http_status = 404


class ObjectNotFoundError(NotFoundError):
    """Raised by object stores when a key is absent."""


class InvalidStateError(DocVaultError):
    """Illegal state transition, e.g. cancelling a finished job."""

    http_status = 409


class ConflictError(DocVaultError):
    """Reserved for duplicate-key scenarios."""

    http_status = 409


class StorageError(DocVaultError):
    """Object storage transport, auth or capacity failure. Callers may retry."""

    http_status = 500


class StorageConfigurationError(DocVaultError):
    """Storage settings cannot produce a working backend. Fatal at startup."""
