"""Operator CLI for Odoo user provisioning.

Runs provisioning operations directly against the configured SQLite
repository and Odoo server, or starts the membership workflows on Temporal
with --workflow.

Examples:
    python scripts/provision_user.py add-user u1 u1@example.com --name "Ada" --role accountant
    python scripts/provision_user.py provision u1 --org org1 --role accountant
    python scripts/provision_user.py credentials u1 --org org1 --reveal
    python scripts/provision_user.py web-url u1 --org org1
    python scripts/provision_user.py deactivate u1 --org org1 --workflow
"""

import argparse
import asyncio
import json
import logging
import sys
import uuid
from pathlib import Path

# Add repo root to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from core.observability.logging import configure_logging
from core.provisioning.errors import ProvisioningError
from core.provisioning.models import LocalUser
from core.settings import ProvisioningSettings, create_provisioner


logger = logging.getLogger(__name__)


async def _with_provisioner(settings: ProvisioningSettings, operation):
    provisioner = create_provisioner(settings)
    try:
        return await operation(provisioner)
    finally:
        await provisioner.transport.close()


async def _start_workflow(settings: ProvisioningSettings, workflow_run, workflow_input, workflow_id: str) -> dict:
    from temporal_client import get_temporal_client

    client = await get_temporal_client()
    logger.info(f"Connected to Temporal: {client.namespace}")
    handle = await client.start_workflow(
        workflow_run,
        workflow_input,
        id=workflow_id,
        task_queue=settings.task_queue,
    )
    logger.info(f"Workflow started: {handle.id}")
    return await handle.result()


async def cmd_add_user(args, settings: ProvisioningSettings) -> dict:
    from core.provisioning.repository import SQLiteProvisioningRepository

    repo = SQLiteProvisioningRepository(settings.db_path)
    user = await repo.upsert_local_user(LocalUser(id=args.user_id, email=args.email, name=args.name, role=args.role))
    return {"local_user_id": user.id, "email": user.email, "role": user.role}


async def cmd_provision(args, settings: ProvisioningSettings) -> dict:
    if args.workflow:
        from workflows.membership_workflow import MemberJoinedInput, MemberJoinedWorkflow

        return await _start_workflow(
            settings,
            MemberJoinedWorkflow.run,
            MemberJoinedInput(local_user_id=args.user_id, organization_id=args.org, role=args.role),
            f"member-joined-{args.org}-{args.user_id}-{uuid.uuid4().hex[:8]}",
        )

    async def run(provisioner):
        result = await provisioner.provision_user(args.user_id, args.org, role=args.role)
        return {
            "remote_uid": result.remote_uid,
            "remote_login": result.remote_login,
            "has_api_key": result.has_api_key,
            "warnings": [w.to_dict() for w in result.warnings],
        }

    return await _with_provisioner(settings, run)


async def cmd_deactivate(args, settings: ProvisioningSettings) -> dict:
    if args.workflow:
        from workflows.membership_workflow import MemberRemovedInput, MemberRemovedWorkflow

        return await _start_workflow(
            settings,
            MemberRemovedWorkflow.run,
            MemberRemovedInput(local_user_id=args.user_id, organization_id=args.org),
            f"member-removed-{args.org}-{args.user_id}-{uuid.uuid4().hex[:8]}",
        )

    async def run(provisioner):
        await provisioner.deactivate_user(args.user_id, args.org)
        return {"local_user_id": args.user_id, "status": "inactive"}

    return await _with_provisioner(settings, run)


async def cmd_credentials(args, settings: ProvisioningSettings) -> dict:
    async def run(provisioner):
        credentials = await provisioner.get_user_credentials(args.user_id, args.org)
        if credentials is None:
            return {"local_user_id": args.user_id, "provisioned": False}
        output = {
            "database_name": credentials.database_name,
            "remote_uid": credentials.remote_uid,
            "is_api_key": credentials.is_api_key,
            "warnings": [w.to_dict() for w in credentials.warnings],
        }
        if args.reveal:
            output["credential"] = credentials.credential
        return output

    return await _with_provisioner(settings, run)


async def cmd_web_url(args, settings: ProvisioningSettings) -> dict:
    async def run(provisioner):
        if args.with_password:
            login = await provisioner.get_web_login(args.user_id, args.org)
            if login is None:
                return {"local_user_id": args.user_id, "provisioned": False}
            return {"login": login.login, "password": login.password, "web_url": login.web_url}
        return {"web_url": await provisioner.get_web_login_url(args.user_id, args.org)}

    return await _with_provisioner(settings, run)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Odoo user provisioning")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    add_user = sub.add_parser("add-user", help="Create or update a local user")
    add_user.add_argument("user_id")
    add_user.add_argument("email")
    add_user.add_argument("--name")
    add_user.add_argument("--role")
    add_user.set_defaults(handler=cmd_add_user)

    provision = sub.add_parser("provision", help="Provision the user's Odoo identity")
    provision.add_argument("user_id")
    provision.add_argument("--org", required=True, help="Organization ID")
    provision.add_argument("--role", help="Role override")
    provision.add_argument("--workflow", action="store_true", help="Run through Temporal")
    provision.set_defaults(handler=cmd_provision)

    deactivate = sub.add_parser("deactivate", help="Deactivate the user's Odoo identity")
    deactivate.add_argument("user_id")
    deactivate.add_argument("--org", required=True, help="Organization ID")
    deactivate.add_argument("--workflow", action="store_true", help="Run through Temporal")
    deactivate.set_defaults(handler=cmd_deactivate)

    credentials = sub.add_parser("credentials", help="Show the user's RPC credential")
    credentials.add_argument("user_id")
    credentials.add_argument("--org", required=True, help="Organization ID")
    credentials.add_argument("--reveal", action="store_true", help="Print the secret")
    credentials.set_defaults(handler=cmd_credentials)

    web_url = sub.add_parser("web-url", help="Show the Odoo web login URL")
    web_url.add_argument("user_id")
    web_url.add_argument("--org", required=True, help="Organization ID")
    web_url.add_argument("--with-password", action="store_true", help="Include login and web password")
    web_url.set_defaults(handler=cmd_web_url)

    return parser


def main():
    args = build_parser().parse_args()
    configure_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        settings = ProvisioningSettings.from_env()
        output = asyncio.run(args.handler(args, settings))
    except ValueError as e:
        logger.error(str(e))
        sys.exit(2)
    except ProvisioningError as e:
        logger.error(f"{type(e).__name__}: {e.message}")
        sys.exit(1)

    print(json.dumps(output, indent=2, default=str))


if __name__ == "__main__":
    main()
