"""Provisioning error taxonomy.

All failures raised by the Odoo connector and the provisioning saga derive
from ProvisioningError so API routes and activities can map them uniformly.
"""

from typing import Any, Dict, Optional


class ProvisioningError(Exception):
    """Base exception for provisioning failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFound(ProvisioningError):
    """Local user, organization database mapping or record does not exist."""
    pass


class StorageError(ProvisioningError):
    """Repository read/write failed."""
    pass


class AuthenticationFailed(ProvisioningError):
    """A remote session could not be established."""

    def __init__(self, message: str, status_code: int = 0, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.status_code = status_code


class RemoteOperationFailed(ProvisioningError):
    """A remote call other than authentication failed."""

    def __init__(
        self,
        message: str,
        model: Optional[str] = None,
        method: Optional[str] = None,
        status_code: int = 0,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.model = model
        self.method = method
        self.status_code = status_code


class ConflictDetected(ProvisioningError):
    """A uniqueness constraint rejected a write (remote login or local record)."""
    pass


class CompensationFailed(ProvisioningError):
    """A rollback write failed after an earlier saga failure.

    Never raised in place of the original error; logged and audited so an
    operator can clean up by hand.
    """

    def __init__(self, message: str, step: str, original_error: BaseException, cause: BaseException):
        super().__init__(message, {"step": step})
        self.step = step
        self.original_error = original_error
        self.cause = cause
