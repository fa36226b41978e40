"""Application settings.

Reads configuration from environment variables (optionally from a .env
file at the repo root) and builds the shared provisioning service.

Environment:
- ODOO_URL, ODOO_AUTH_TIMEOUT_SECONDS, ODOO_CALL_TIMEOUT_SECONDS, ODOO_API_KEY_SCOPE
- ODOO_GROUP_POLICY_PATH: Optional JSON role-to-group policy
- PROVISIONING_DB_PATH: SQLite file for provisioning records
- CREDENTIAL_ENCRYPTION_KEY: Base64 32-byte AES key (required)
- AUDIT_LOG_DIR: Optional directory for JSON audit files
- TEMPORAL_TASK_QUEUE: Task queue polled by the provisioning worker
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from connectors.odoo.odoo_transport import OdooApiConfig, OdooTransport
from core.audit.events import AuditLogger, JSONFileAuditBackend
from core.provisioning.group_policy import DEFAULT_GROUP_POLICY, GroupPolicy
from core.provisioning.provisioner import UserProvisioner
from core.provisioning.repository import SQLiteProvisioningRepository
from core.security.encryption import CredentialVault

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_TASK_QUEUE = "odoo-provisioning"


@dataclass
class ProvisioningSettings:
    """Settings for the provisioning service."""
    encryption_key: str
    odoo: OdooApiConfig = field(default_factory=OdooApiConfig)
    db_path: str = "provisioning.db"
    group_policy_path: Optional[str] = None
    audit_dir: Optional[str] = None
    task_queue: str = DEFAULT_TASK_QUEUE

    @classmethod
    def from_env(cls) -> "ProvisioningSettings":
        """Build settings from the environment.

        Raises:
            ValueError: If CREDENTIAL_ENCRYPTION_KEY is missing
        """
        encryption_key = os.getenv("CREDENTIAL_ENCRYPTION_KEY")
        if not encryption_key:
            raise ValueError(
                "CREDENTIAL_ENCRYPTION_KEY environment variable not set. "
                "Set to a base64-encoded 32-byte key (see core.security.generate_encryption_key)"
            )

        return cls(
            encryption_key=encryption_key,
            odoo=OdooApiConfig.from_env(),
            db_path=os.getenv("PROVISIONING_DB_PATH", "provisioning.db"),
            group_policy_path=os.getenv("ODOO_GROUP_POLICY_PATH") or None,
            audit_dir=os.getenv("AUDIT_LOG_DIR") or None,
            task_queue=os.getenv("TEMPORAL_TASK_QUEUE", DEFAULT_TASK_QUEUE),
        )

    def load_group_policy(self) -> GroupPolicy:
        if self.group_policy_path:
            return GroupPolicy.load(self.group_policy_path)
        return DEFAULT_GROUP_POLICY


def create_provisioner(settings: Optional[ProvisioningSettings] = None) -> UserProvisioner:
    """Wire a UserProvisioner from settings (environment by default).

    The caller owns the returned provisioner's transport and should close
    it with `await provisioner.transport.close()`.
    """
    settings = settings or ProvisioningSettings.from_env()

    audit = AuditLogger()
    if settings.audit_dir:
        audit.add_backend(JSONFileAuditBackend(Path(settings.audit_dir)))

    return UserProvisioner(
        repository=SQLiteProvisioningRepository(settings.db_path),
        vault=CredentialVault(settings.encryption_key),
        transport=OdooTransport(settings.odoo),
        group_policy=settings.load_group_policy(),
        audit=audit,
    )
