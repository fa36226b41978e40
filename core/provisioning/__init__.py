"""Provisioning engine - Odoo identities for local users.

The saga orchestrator lives in core.provisioning.provisioner and is imported
from there directly; this package root only exposes the data model, the
error taxonomy and the group policy.
"""

from core.provisioning.errors import (
    AuthenticationFailed,
    CompensationFailed,
    ConflictDetected,
    NotFound,
    ProvisioningError,
    RemoteOperationFailed,
    StorageError,
)
from core.provisioning.models import (
    LocalUser,
    OdooDatabase,
    ProvisioningRecord,
    ProvisioningState,
    ProvisioningWarning,
    ProvisionResult,
    UserCredentials,
    WarningCode,
    WebLogin,
)
from core.provisioning.group_policy import DEFAULT_GROUP_POLICY, GroupPolicy

__all__ = [
    "AuthenticationFailed",
    "CompensationFailed",
    "ConflictDetected",
    "NotFound",
    "ProvisioningError",
    "RemoteOperationFailed",
    "StorageError",
    "LocalUser",
    "OdooDatabase",
    "ProvisioningRecord",
    "ProvisioningState",
    "ProvisioningWarning",
    "ProvisionResult",
    "UserCredentials",
    "WarningCode",
    "WebLogin",
    "DEFAULT_GROUP_POLICY",
    "GroupPolicy",
]
