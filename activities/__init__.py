"""Activity definitions module."""

from activities.provisioning import (
    check_member_provisioned,
    provision_member,
    deactivate_member,
    get_provisioner,
    set_provisioner,
    MemberInput,
    ProvisionMemberInput,
)

__all__ = [
    # Provisioning activities
    "check_member_provisioned",
    "provision_member",
    "deactivate_member",
    "MemberInput",
    "ProvisionMemberInput",
    # Wiring
    "get_provisioner",
    "set_provisioner",
]
