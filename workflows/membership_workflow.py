"""Membership workflows.

Keep Odoo identities in step with organization membership:
- MemberJoinedWorkflow provisions the new member (skipped when already provisioned)
- MemberRemovedWorkflow deactivates the departing member
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from activities.provisioning import (
        check_member_provisioned,
        deactivate_member,
        provision_member,
        MemberInput,
        ProvisionMemberInput,
    )


TASK_QUEUE = "odoo-provisioning"

# Failures that will not heal by retrying the whole activity
NON_RETRYABLE_ERRORS = ["NotFound", "AuthenticationFailed", "ValueError"]


def _activity_options() -> dict:
    return {
        "start_to_close_timeout": timedelta(minutes=5),
        "retry_policy": RetryPolicy(
            maximum_attempts=3,
            initial_interval=timedelta(seconds=5),
            maximum_interval=timedelta(minutes=1),
            backoff_coefficient=2.0,
            non_retryable_error_types=NON_RETRYABLE_ERRORS,
        ),
    }


@dataclass
class MemberJoinedInput:
    """Input for MemberJoinedWorkflow.

    Attributes:
        local_user_id: Local user who joined
        organization_id: Organization joined
        role: Role within the organization (drives Odoo groups)
    """
    local_user_id: str
    organization_id: str
    role: Optional[str] = None


@dataclass
class MemberRemovedInput:
    """Input for MemberRemovedWorkflow."""
    local_user_id: str
    organization_id: str


@workflow.defn
class MemberJoinedWorkflow:
    """Provision an Odoo user when someone joins an organization."""

    @workflow.run
    async def run(self, input: MemberJoinedInput) -> dict:
        workflow.logger.info(f"Member {input.local_user_id} joined {input.organization_id}")

        already = await workflow.execute_activity(
            check_member_provisioned,
            MemberInput(local_user_id=input.local_user_id, organization_id=input.organization_id),
            **_activity_options(),
        )
        if already:
            workflow.logger.info(f"Member {input.local_user_id} already provisioned, skipping")
            return {"status": "SKIPPED", "local_user_id": input.local_user_id}

        result = await workflow.execute_activity(
            provision_member,
            ProvisionMemberInput(
                local_user_id=input.local_user_id,
                organization_id=input.organization_id,
                role=input.role,
            ),
            **_activity_options(),
        )

        workflow.logger.info(
            f"Member {input.local_user_id} provisioned as Odoo uid {result['remote_uid']} "
            f"(api_key={result['has_api_key']}, warnings={len(result['warnings'])})"
        )
        return {"status": "PROVISIONED", "local_user_id": input.local_user_id, **result}


@workflow.defn
class MemberRemovedWorkflow:
    """Deactivate the Odoo user when someone leaves an organization."""

    @workflow.run
    async def run(self, input: MemberRemovedInput) -> dict:
        workflow.logger.info(f"Member {input.local_user_id} removed from {input.organization_id}")

        await workflow.execute_activity(
            deactivate_member,
            MemberInput(local_user_id=input.local_user_id, organization_id=input.organization_id),
            **_activity_options(),
        )
        return {"status": "DEACTIVATED", "local_user_id": input.local_user_id}
