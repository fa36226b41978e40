"""Provisioning activities for organization membership changes.

Thin wrappers around UserProvisioner so that provisioning runs under
Temporal's retry and visibility. Provisioning is safe to retry: remote
users are created-or-adopted and the record insert is idempotent.

Activity results never carry passwords or API keys; they end up in
workflow history.
"""

from dataclasses import dataclass
from typing import Optional

from temporalio import activity

from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)
from core.provisioning.provisioner import UserProvisioner


_provisioner: Optional[UserProvisioner] = None


def get_provisioner() -> UserProvisioner:
    """Shared provisioner for this worker process, built from the environment."""
    global _provisioner
    if _provisioner is None:
        from core.settings import create_provisioner
        _provisioner = create_provisioner()
    return _provisioner


def set_provisioner(provisioner: Optional[UserProvisioner]) -> None:
    """Override the shared provisioner (tests, custom wiring)."""
    global _provisioner
    _provisioner = provisioner


@dataclass
class MemberInput:
    """Identifies one organization membership.

    Attributes:
        local_user_id: Local user ID
        organization_id: Organization whose Odoo database is targeted
    """
    local_user_id: str
    organization_id: str


@dataclass
class ProvisionMemberInput:
    """Input for provision_member activity.

    Attributes:
        local_user_id: Local user ID
        organization_id: Organization whose Odoo database is targeted
        role: Optional role override (falls back to the user's stored role)
    """
    local_user_id: str
    organization_id: str
    role: Optional[str] = None


def _correlation(input) -> dict:
    info = activity.info()
    return {
        "organization_id": input.organization_id,
        "local_user_id": input.local_user_id,
        "workflow_id": info.workflow_id,
        "activity_name": info.activity_type,
    }


@activity.defn
async def check_member_provisioned(input: MemberInput) -> bool:
    """Whether the user already has an Odoo identity in the organization."""
    with with_correlation(**_correlation(input)):
        return await get_provisioner().user_exists(input.local_user_id, input.organization_id)


@activity.defn
async def provision_member(input: ProvisionMemberInput) -> dict:
    """Provision the member's Odoo identity.

    Returns:
        dict with remote_uid, remote_login, has_api_key and warnings
    """
    with with_correlation(**_correlation(input)):
        started = log_activity_start("provision_member", role=input.role)
        try:
            result = await get_provisioner().provision_user(
                input.local_user_id,
                input.organization_id,
                role=input.role,
            )
        except Exception as e:
            log_activity_error("provision_member", e)
            raise

        log_activity_complete(
            "provision_member",
            started,
            remote_uid=result.remote_uid,
            degraded=result.degraded,
        )
        return {
            "remote_uid": result.remote_uid,
            "remote_login": result.remote_login,
            "has_api_key": result.has_api_key,
            "warnings": [w.to_dict() for w in result.warnings],
        }


@activity.defn
async def deactivate_member(input: MemberInput) -> dict:
    """Deactivate the member's Odoo identity (no-op when absent or inactive)."""
    with with_correlation(**_correlation(input)):
        started = log_activity_start("deactivate_member")
        try:
            await get_provisioner().deactivate_user(input.local_user_id, input.organization_id)
        except Exception as e:
            log_activity_error("deactivate_member", e)
            raise

        log_activity_complete("deactivate_member", started)
        return {"local_user_id": input.local_user_id, "deactivated": True}
