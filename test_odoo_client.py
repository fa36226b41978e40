"""Tests for the remote call executor, session refresh and API key issuance."""

from typing import List

import pytest

from conftest import ADMIN_LOGIN, ADMIN_PASSWORD, DATABASE_NAME
from connectors.odoo.odoo_apikeys import ApiKeyIssuer, build_key_name
from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_client import (
    RemoteCallExecutor,
    SessionRefreshPolicy,
    is_session_expired_error,
)
from connectors.odoo.odoo_models import AdminCredentials, RemoteUserRef
from connectors.odoo.odoo_transport import AUTHENTICATE_PATH
from core.observability.metrics import get_metrics
from core.provisioning.errors import AuthenticationFailed, RemoteOperationFailed


ADMIN = AdminCredentials(database_name=DATABASE_NAME, admin_login=ADMIN_LOGIN, admin_password=ADMIN_PASSWORD)


@pytest.fixture
def authenticator(odoo):
    return SessionAuthenticator(odoo)


@pytest.fixture
def executor(odoo, authenticator):
    return RemoteCallExecutor(odoo, authenticator)


@pytest.fixture
async def admin_session(authenticator):
    return await authenticator.authenticate(DATABASE_NAME, ADMIN_LOGIN, ADMIN_PASSWORD)


def test_admin_password_not_in_repr():
    assert ADMIN_PASSWORD not in repr(ADMIN)


@pytest.mark.parametrize("message,expected", [
    ("Odoo Session Expired", True),
    ("odoo.http.SessionExpiredException", True),
    ("error: session_expired", True),
    ("Access Denied", False),
    (None, False),
])
def test_session_expiry_detection(message, expected):
    assert is_session_expired_error(message) is expected


class TestRemoteCallExecutor:

    async def test_search_read_validates_rows(self, odoo, executor, admin_session):
        odoo.add_user("u1@example.com", uid=50)
        rows = await executor.call(
            admin_session,
            "res.users",
            "search_read",
            args=[[["login", "=", "u1@example.com"]]],
            kwargs={"fields": ["id", "active"], "limit": 1},
            result_type=List[RemoteUserRef],
        )
        assert rows == [RemoteUserRef(id=50, active=True)]

    async def test_error_envelope_raises_with_model_and_method(self, odoo, executor, admin_session):
        odoo.fail_ops.add("res.users.create")
        with pytest.raises(RemoteOperationFailed) as exc_info:
            await executor.call(admin_session, "res.users", "create", args=[{"login": "x"}], result_type=int)

        assert exc_info.value.model == "res.users"
        assert exc_info.value.method == "create"
        assert "refused" in exc_info.value.message

    async def test_schema_mismatch(self, odoo, executor, admin_session):
        odoo.add_user("u1@example.com")
        with pytest.raises(RemoteOperationFailed, match="expected schema"):
            await executor.call(
                admin_session,
                "res.users",
                "search_read",
                args=[[["login", "=", "u1@example.com"]]],
                result_type=int,
            )

    async def test_transport_failure(self, odoo, executor, admin_session):
        odoo.transport_down = True
        with pytest.raises(RemoteOperationFailed) as exc_info:
            await executor.call(admin_session, "res.users", "write", args=[[1], {}])
        assert exc_info.value.details["timed_out"] is True

    async def test_expired_session_refreshed_once(self, odoo, executor, admin_session):
        uid = odoo.add_user("u1@example.com")
        odoo.expire_calls = 1

        result = await executor.call(
            admin_session,
            "res.users",
            "write",
            args=[[uid], {"active": False}],
            result_type=bool,
            admin_credentials=ADMIN,
        )

        assert result is True
        assert odoo.users["u1@example.com"]["active"] is False
        assert odoo.paths().count(AUTHENTICATE_PATH) == 2
        summary = get_metrics().get_summary()["remote_calls"]
        assert summary["session_refreshes"] == 1
        assert summary["by_operation"]["res.users.write"] == {"calls": 2, "failures": 1, "session_refreshes": 1}

    async def test_refreshed_session_is_reported(self, odoo, executor, admin_session):
        uid = odoo.add_user("u1@example.com")
        odoo.expire_calls = 1
        refreshed = []

        await executor.call(
            admin_session,
            "res.users",
            "write",
            args=[[uid], {"active": False}],
            admin_credentials=ADMIN,
            on_session_refresh=refreshed.append,
        )

        assert len(refreshed) == 1
        assert refreshed[0].session_id != admin_session.session_id
        assert odoo.requests[-1]["cookie"] == refreshed[0].cookie_header

    async def test_second_expiry_is_not_retried(self, odoo, executor, admin_session):
        odoo.expire_calls = 2
        with pytest.raises(RemoteOperationFailed, match="Session Expired"):
            await executor.call(admin_session, "res.users", "write", args=[[1], {}], admin_credentials=ADMIN)
        assert odoo.paths().count(AUTHENTICATE_PATH) == 2

    async def test_no_refresh_without_admin_credentials(self, odoo, executor, admin_session):
        odoo.expire_calls = 1
        with pytest.raises(RemoteOperationFailed):
            await executor.call(admin_session, "res.users", "write", args=[[1], {}])
        assert odoo.paths().count(AUTHENTICATE_PATH) == 1

    async def test_other_errors_are_not_retried(self, odoo, executor, admin_session):
        odoo.fail_ops.add("res.users.create")
        with pytest.raises(RemoteOperationFailed):
            await executor.call(admin_session, "res.users", "create", args=[{}], admin_credentials=ADMIN)
        assert odoo.paths().count(AUTHENTICATE_PATH) == 1

    async def test_refresh_failure_surfaces_as_authentication_failed(self, odoo, executor, admin_session):
        odoo.expire_calls = 1
        odoo.auth_down = True
        with pytest.raises(AuthenticationFailed):
            await executor.call(admin_session, "res.users", "write", args=[[1], {}], admin_credentials=ADMIN)

    async def test_policy_bound_is_configurable(self, odoo, executor, admin_session):
        uid = odoo.add_user("u1@example.com")
        odoo.expire_calls = 2
        policy = SessionRefreshPolicy(max_attempts=3)

        await executor.call(
            admin_session,
            "res.users",
            "write",
            args=[[uid], {"active": False}],
            admin_credentials=ADMIN,
            policy=policy,
        )
        assert odoo.paths().count(AUTHENTICATE_PATH) == 3


class TestApiKeyIssuer:

    @pytest.fixture
    def issuer(self, odoo, authenticator):
        return ApiKeyIssuer(odoo, authenticator)

    @pytest.fixture
    def target_user(self, odoo):
        uid = odoo.add_user("u1@example.com")
        odoo.users["u1@example.com"]["password"] = "user-pass"
        return uid

    def test_key_name_includes_login(self):
        assert build_key_name("u1@example.com").startswith("provisioning-u1@example.com-")

    async def test_issue_as_target_user(self, odoo, issuer, target_user):
        token = await issuer.issue(DATABASE_NAME, "u1@example.com", "user-pass")

        assert token.startswith(f"key-{target_user}-")
        key_request = odoo.requests[-1]
        assert key_request["params"]["scope"] == "rpc"
        assert key_request["params"]["name"].startswith("provisioning-u1@example.com-")

    async def test_bare_response_accepted(self, odoo, issuer, target_user):
        odoo.api_key_bare = True
        assert (await issuer.issue(DATABASE_NAME, "u1@example.com", "user-pass")).startswith("key-")

    async def test_service_refusal(self, odoo, issuer, target_user):
        odoo.api_key_error = "API keys disabled"
        with pytest.raises(RemoteOperationFailed, match="API keys disabled"):
            await issuer.issue(DATABASE_NAME, "u1@example.com", "user-pass")

    async def test_target_user_cannot_log_in(self, issuer, target_user):
        with pytest.raises(AuthenticationFailed):
            await issuer.issue(DATABASE_NAME, "u1@example.com", "wrong-pass")
