"""Register an organization's Odoo database.

Stores the database name and admin login with the admin password encrypted
under CREDENTIAL_ENCRYPTION_KEY. The password is read from the prompt
unless --admin-password-env names an environment variable holding it.

Examples:
    python scripts/register_database.py org1 acme_prod --admin-login admin
    python scripts/register_database.py org1 acme_prod --admin-login admin --admin-password-env ODOO_ADMIN_PASSWORD
    python scripts/register_database.py --generate-key
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
import uuid
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.observability.logging import configure_logging
from core.provisioning.models import OdooDatabase
from core.provisioning.repository import SQLiteProvisioningRepository
from core.security.encryption import CredentialVault, generate_encryption_key
from core.settings import ProvisioningSettings


logger = logging.getLogger(__name__)


async def register(settings: ProvisioningSettings, organization_id: str, database_name: str, admin_login: str, admin_password: str) -> OdooDatabase:
    vault = CredentialVault(settings.encryption_key)
    repo = SQLiteProvisioningRepository(settings.db_path)
    return await repo.register_odoo_database(
        OdooDatabase(
            id=str(uuid.uuid4()),
            organization_id=organization_id,
            database_name=database_name,
            admin_login=admin_login,
            encrypted_admin_password=vault.encrypt(admin_password),
        )
    )


def main():
    parser = argparse.ArgumentParser(description="Register an organization's Odoo database")
    parser.add_argument("organization_id", nargs="?")
    parser.add_argument("database_name", nargs="?")
    parser.add_argument("--admin-login", default="admin")
    parser.add_argument("--admin-password-env", help="Environment variable holding the admin password")
    parser.add_argument("--generate-key", action="store_true", help="Print a new CREDENTIAL_ENCRYPTION_KEY and exit")
    args = parser.parse_args()

    if args.generate_key:
        print(generate_encryption_key())
        return

    if not args.organization_id or not args.database_name:
        parser.error("organization_id and database_name are required")

    configure_logging(level=logging.INFO)

    if args.admin_password_env:
        admin_password = os.getenv(args.admin_password_env)
        if not admin_password:
            parser.error(f"{args.admin_password_env} is not set")
    else:
        admin_password = getpass.getpass(f"Odoo admin password for {args.admin_login}@{args.database_name}: ")

    try:
        settings = ProvisioningSettings.from_env()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(2)

    database = asyncio.run(
        register(settings, args.organization_id, args.database_name, args.admin_login, admin_password)
    )
    print(f"Registered {database.database_name} for organization {database.organization_id} (id {database.id})")


if __name__ == "__main__":
    main()
