"""Provisioning data model.

Local-side records owned by the provisioning engine. Remote-side shapes
(sessions, JSON-RPC envelopes) live in connectors.odoo.odoo_models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


DEFAULT_ROLE = "user"


class ProvisioningState(str, Enum):
    """Externally observable states of one provisioning saga."""
    UNPROVISIONED = "UNPROVISIONED"
    REMOTE_USER_RESOLVED = "REMOTE_USER_RESOLVED"
    GROUPS_ASSIGNED = "GROUPS_ASSIGNED"
    PASSWORD_SET = "PASSWORD_SET"
    CREDENTIAL_ACQUIRED = "CREDENTIAL_ACQUIRED"
    PROVISIONED = "PROVISIONED"


class WarningCode(str, Enum):
    """Degraded-but-successful outcomes of best-effort steps."""
    GROUP_LOOKUP_FAILED = "GROUP_LOOKUP_FAILED"
    GROUP_NOT_FOUND = "GROUP_NOT_FOUND"
    API_KEY_UNAVAILABLE = "API_KEY_UNAVAILABLE"


@dataclass
class ProvisioningWarning:
    """A best-effort step that failed without failing the operation."""
    code: WarningCode
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


@dataclass
class LocalUser:
    """Local account that owns a remote identity."""
    id: str
    email: str
    name: Optional[str] = None
    role: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email


@dataclass
class OdooDatabase:
    """Organization-to-Odoo-database mapping with encrypted admin secret."""
    id: str
    organization_id: str
    database_name: str
    admin_login: str
    encrypted_admin_password: bytes


@dataclass
class ProvisioningRecord:
    """Durable proof that a remote identity was created and is tracked.

    Exists iff the remote account was confirmed and the local mirror
    committed. Never deleted; deactivation only flips is_active.
    """
    local_user_id: str
    remote_database_id: str
    remote_uid: int
    remote_login: str
    encrypted_password: bytes
    encrypted_api_key: Optional[bytes] = None
    is_active: bool = True
    last_synced_at: datetime = field(default_factory=datetime.utcnow)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def has_api_key(self) -> bool:
        return self.encrypted_api_key is not None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without secrets."""
        return {
            "id": self.id,
            "local_user_id": self.local_user_id,
            "remote_database_id": self.remote_database_id,
            "remote_uid": self.remote_uid,
            "remote_login": self.remote_login,
            "has_api_key": self.has_api_key,
            "is_active": self.is_active,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class ProvisionResult:
    """Outcome of provision_user."""
    remote_uid: int
    remote_login: str
    credential: str
    has_api_key: bool
    warnings: List[ProvisioningWarning] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return bool(self.warnings)


@dataclass
class UserCredentials:
    """Best available credential for RPC access as the provisioned user."""
    database_name: str
    remote_uid: int
    credential: str
    is_api_key: bool
    warnings: List[ProvisioningWarning] = field(default_factory=list)


@dataclass
class WebLogin:
    """Interactive login details for the Odoo web client."""
    login: str
    password: str
    web_url: str
