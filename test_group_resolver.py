"""Tests for group resolution and the role-to-group policy."""

import json

import pytest

from conftest import ADMIN_LOGIN, ADMIN_PASSWORD, DATABASE_NAME
from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_client import RemoteCallExecutor
from connectors.odoo.odoo_groups import GroupResolver, split_external_id
from connectors.odoo.odoo_models import AdminCredentials
from connectors.odoo.odoo_transport import AUTHENTICATE_PATH
from core.observability.metrics import get_metrics
from core.provisioning.group_policy import DEFAULT_BASE_GROUPS, DEFAULT_GROUP_POLICY, GroupPolicy
from core.provisioning.models import WarningCode


ADMIN = AdminCredentials(database_name=DATABASE_NAME, admin_login=ADMIN_LOGIN, admin_password=ADMIN_PASSWORD)


@pytest.fixture
def resolver(odoo):
    return GroupResolver(RemoteCallExecutor(odoo, SessionAuthenticator(odoo)))


@pytest.fixture
async def session(odoo):
    return await SessionAuthenticator(odoo).authenticate(DATABASE_NAME, ADMIN_LOGIN, ADMIN_PASSWORD)


def test_split_external_id():
    assert split_external_id("base.group_user") == ("base", "group_user")
    assert split_external_id("group_user") is None
    assert split_external_id(".group_user") is None
    assert split_external_id("base.") is None


class TestGroupResolver:

    async def test_resolves_known_groups(self, resolver, session):
        resolution = await resolver.resolve_groups(session, ["base.group_user", "account.group_account_manager"])
        assert resolution.group_ids == [1, 10]
        assert resolution.warnings == []

    async def test_missing_group_is_a_warning(self, resolver, session):
        resolution = await resolver.resolve_groups(session, ["base.group_user", "hr_payroll.group_hr_payroll_user"])

        assert resolution.group_ids == [1]
        assert len(resolution.warnings) == 1
        assert resolution.warnings[0].code == WarningCode.GROUP_NOT_FOUND
        assert resolution.warnings[0].details == {"group": "hr_payroll.group_hr_payroll_user"}
        assert get_metrics().get_summary()["warnings"] == {"GROUP_NOT_FOUND": 1}

    async def test_malformed_identifier_skipped_without_lookup(self, odoo, resolver, session):
        resolution = await resolver.resolve_groups(session, ["not_a_group"])
        assert resolution.group_ids == []
        assert resolution.warnings[0].code == WarningCode.GROUP_NOT_FOUND
        assert odoo.calls("ir.model.data", "search_read") == []

    async def test_lookup_failure_is_a_warning(self, odoo, resolver, session):
        odoo.fail_ops.add("ir.model.data.search_read")
        resolution = await resolver.resolve_groups(session, ["base.group_user"])
        assert resolution.group_ids == []
        assert resolution.warnings[0].code == WarningCode.GROUP_LOOKUP_FAILED

    async def test_duplicate_ids_collapsed(self, odoo, resolver, session):
        odoo.groups["base.group_alias"] = 1
        resolution = await resolver.resolve_groups(session, ["base.group_user", "base.group_alias"])
        assert resolution.group_ids == [1]

    async def test_refreshed_session_carries_to_later_lookups(self, odoo, resolver, session):
        odoo.expire_calls = 1
        refreshed = []

        resolution = await resolver.resolve_groups(
            session,
            ["base.group_user", "base.group_partner_manager"],
            ADMIN,
            on_session_refresh=refreshed.append,
        )

        assert resolution.group_ids == [1, 3]
        assert len(refreshed) == 1
        assert odoo.paths().count(AUTHENTICATE_PATH) == 2
        assert odoo.requests[-1]["cookie"] == refreshed[0].cookie_header


class TestGroupPolicy:

    def test_role_groups_added_to_base(self):
        groups = DEFAULT_GROUP_POLICY.groups_for_role("accountant")
        assert groups[:len(DEFAULT_BASE_GROUPS)] == DEFAULT_BASE_GROUPS
        assert "account.group_account_manager" in groups
        assert "analytic.group_analytic_accounting" in groups

    def test_no_duplicates(self):
        groups = DEFAULT_GROUP_POLICY.groups_for_role("accountant")
        assert len(groups) == len(set(groups))

    def test_unknown_role_falls_back_to_user(self):
        assert DEFAULT_GROUP_POLICY.normalize_role("Astronaut") == "user"
        assert DEFAULT_GROUP_POLICY.groups_for_role("Astronaut") == DEFAULT_BASE_GROUPS

    def test_role_is_case_insensitive(self):
        assert DEFAULT_GROUP_POLICY.groups_for_role("ADMIN") == DEFAULT_GROUP_POLICY.groups_for_role("admin")

    def test_load_from_json(self, tmp_path):
        path = tmp_path / "policy.json"
        path.write_text(json.dumps({
            "version": "7",
            "base_groups": ["base.group_user"],
            "role_groups": {"Auditor": ["account.group_account_readonly"]},
        }))

        policy = GroupPolicy.load(path)

        assert policy.version == "7"
        assert policy.groups_for_role("auditor") == ["base.group_user", "account.group_account_readonly"]
        assert policy.groups_for_role(None) == ["base.group_user"]
        assert GroupPolicy.from_dict(policy.to_dict()) == policy
