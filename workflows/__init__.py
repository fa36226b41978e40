"""Workflow definitions module."""

from workflows.membership_workflow import (
    MemberJoinedInput,
    MemberJoinedWorkflow,
    MemberRemovedInput,
    MemberRemovedWorkflow,
)

__all__ = ["MemberJoinedWorkflow", "MemberJoinedInput", "MemberRemovedWorkflow", "MemberRemovedInput"]
