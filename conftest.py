"""Shared pytest fixtures.

FakeOdooServer answers the three Odoo endpoints the connector talks to
(session authenticate, call_kw and the API key service) from in-memory
state, so provisioning sagas can run end to end without a real server.
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Set

import pytest

from connectors.odoo.odoo_transport import (
    API_KEY_PATH,
    AUTHENTICATE_PATH,
    CALL_KW_PATH,
    OdooApiConfig,
    TransportError,
    TransportResponse,
)
from core.audit.events import AuditLogger, InMemoryAuditBackend
from core.observability.metrics import MetricsCollector
from core.provisioning.group_policy import GroupPolicy
from core.provisioning.models import LocalUser, OdooDatabase
from core.provisioning.provisioner import UserProvisioner
from core.provisioning.repository import InMemoryProvisioningRepository
from core.security.encryption import CredentialVault, generate_encryption_key


ADMIN_LOGIN = "admin"
ADMIN_PASSWORD = "admin-secret"
ADMIN_UID = 2
DATABASE_NAME = "acme"

SESSION_EXPIRED_ERROR = {
    "code": 100,
    "message": "Odoo Session Expired",
    "data": {"name": "odoo.http.SessionExpiredException", "message": "Session expired"},
}

KNOWN_GROUPS = {
    "base.group_user": 1,
    "base.group_partner_manager": 3,
    "account.group_account_manager": 10,
    "account.group_account_user": 11,
}


def rpc_result(result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": None, "result": result}


def rpc_error(message: str, name: str = "odoo.exceptions.UserError") -> Dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": None,
        "error": {"code": 200, "message": "Odoo Server Error", "data": {"name": name, "message": message}},
    }


class FakeOdooServer:
    """In-memory Odoo stand-in implementing the transport interface.

    Failure injection:
        fail_ops: operation labels that answer with an error envelope, e.g.
            "res.users.create", "res.users.write:groups_id",
            "res.users.write:password", "res.users.write:active",
            "ir.model.data.search_read"
        expire_calls: number of upcoming call_kw requests answered with a
            session-expired error; the presented session is dropped
        api_key_error: refusal message from the key service
        concurrent_create: another writer creates the same login just
            before our create lands
        auth_down: authenticate answers HTTP 503
        transport_down: every request raises TransportError
        interleave: yield to the event loop before answering each request,
            so concurrent sagas interleave request by request
    """

    def __init__(self, config: Optional[OdooApiConfig] = None):
        self.config = config or OdooApiConfig(base_url="https://odoo.test")
        self.users: Dict[str, Dict[str, Any]] = {}
        self.groups = dict(KNOWN_GROUPS)
        self.sessions: Dict[str, int] = {}
        self.requests: List[Dict[str, Any]] = []

        self.fail_ops: Set[str] = set()
        self.expire_calls = 0
        self.api_key_error: Optional[str] = None
        self.api_key_bare = False
        self.concurrent_create = False
        self.auth_down = False
        self.transport_down = False
        self.interleave = False

        self._uids = itertools.count(42)
        self._session_ids = itertools.count(1)
        self._key_ids = itertools.count(1)
        self.closed = False

    # Helpers for tests

    def add_user(self, login: str, uid: Optional[int] = None, active: bool = True) -> int:
        uid = uid or next(self._uids)
        self.users[login] = {"id": uid, "login": login, "active": active, "password": None, "groups": []}
        return uid

    def user_by_id(self, uid: int) -> Optional[Dict[str, Any]]:
        for user in self.users.values():
            if user["id"] == uid:
                return user
        return None

    def calls(self, model: str, method: str) -> List[Dict[str, Any]]:
        return [
            r["params"] for r in self.requests
            if r["path"] == CALL_KW_PATH and r["params"]["model"] == model and r["params"]["method"] == method
        ]

    def paths(self) -> List[str]:
        return [r["path"] for r in self.requests]

    # Transport interface

    async def close(self) -> None:
        self.closed = True

    async def post_json(
        self,
        path: str,
        params: Dict[str, Any],
        cookie_header: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ) -> TransportResponse:
        if self.interleave:
            await asyncio.sleep(0)
        self.requests.append({"path": path, "params": params, "cookie": cookie_header})
        if self.transport_down:
            raise TransportError(f"Odoo request to {path} timed out after {timeout_seconds} seconds", timed_out=True)

        if path == AUTHENTICATE_PATH:
            return self._authenticate(params)
        if path == CALL_KW_PATH:
            return self._call_kw(params, cookie_header)
        if path == API_KEY_PATH:
            return self._issue_api_key(params, cookie_header)
        return TransportResponse(status=404, text="Not Found")

    # Endpoints

    def _authenticate(self, params: Dict[str, Any]) -> TransportResponse:
        if self.auth_down:
            return TransportResponse(status=503, text="Service Unavailable")

        login, password = params["login"], params["password"]
        uid = None
        if login == ADMIN_LOGIN and password == ADMIN_PASSWORD:
            uid = ADMIN_UID
        elif login in self.users:
            user = self.users[login]
            if user["active"] and user["password"] and user["password"] == password:
                uid = user["id"]

        if uid is None:
            return TransportResponse(status=200, payload=rpc_result({"uid": False}))

        session_id = f"sess-{next(self._session_ids)}"
        self.sessions[session_id] = uid
        return TransportResponse(
            status=200,
            payload=rpc_result({"uid": uid, "db": params["db"]}),
            cookies=[f"session_id={session_id}"],
        )

    def _session_id(self, cookie_header: Optional[str]) -> Optional[str]:
        if not cookie_header:
            return None
        for part in cookie_header.split(";"):
            name, _, value = part.strip().partition("=")
            if name == "session_id":
                return value
        return None

    def _session_uid(self, cookie_header: Optional[str]) -> Optional[int]:
        session_id = self._session_id(cookie_header)
        return self.sessions.get(session_id) if session_id else None

    def _call_kw(self, params: Dict[str, Any], cookie_header: Optional[str]) -> TransportResponse:
        if self._session_uid(cookie_header) is None:
            return TransportResponse(status=200, payload={"jsonrpc": "2.0", "id": None, "error": SESSION_EXPIRED_ERROR})
        if self.expire_calls > 0:
            self.expire_calls -= 1
            self.sessions.pop(self._session_id(cookie_header), None)
            return TransportResponse(status=200, payload={"jsonrpc": "2.0", "id": None, "error": SESSION_EXPIRED_ERROR})

        model, method = params["model"], params["method"]
        args, kwargs = params["args"], params["kwargs"]
        op = f"{model}.{method}"

        if op in self.fail_ops:
            return TransportResponse(status=200, payload=rpc_error(f"{op} refused"))

        if op == "res.users.search_read":
            login = args[0][0][2]
            user = self.users.get(login)
            active_test = kwargs.get("context", {}).get("active_test", True)
            if user is None or (active_test and not user["active"]):
                return TransportResponse(status=200, payload=rpc_result([]))
            row = {"id": user["id"]}
            if "active" in kwargs.get("fields", []):
                row["active"] = user["active"]
            return TransportResponse(status=200, payload=rpc_result([row]))

        if op == "res.users.create":
            vals = args[0]
            if self.concurrent_create:
                self.concurrent_create = False
                self.add_user(vals["login"], uid=777)
            if vals["login"] in self.users:
                return TransportResponse(
                    status=200,
                    payload=rpc_error(
                        'duplicate key value violates unique constraint "res_users_login_key"',
                        name="psycopg2.errors.UniqueViolation",
                    ),
                )
            return TransportResponse(status=200, payload=rpc_result(self.add_user(vals["login"])))

        if op == "res.users.write":
            ids, vals = args
            for field_name in vals:
                if f"{op}:{field_name}" in self.fail_ops:
                    return TransportResponse(status=200, payload=rpc_error(f"cannot write {field_name}"))
            for uid in ids:
                user = self.user_by_id(uid)
                if user is None:
                    return TransportResponse(status=200, payload=rpc_error(f"Record {uid} does not exist"))
                if "groups_id" in vals:
                    user["groups"] = list(vals["groups_id"][0][2])
                if "password" in vals:
                    user["password"] = vals["password"]
                if "active" in vals:
                    user["active"] = vals["active"]
            return TransportResponse(status=200, payload=rpc_result(True))

        if op == "ir.model.data.search_read":
            domain = dict((clause[0], clause[2]) for clause in args[0])
            res_id = self.groups.get(f"{domain['module']}.{domain['name']}")
            return TransportResponse(status=200, payload=rpc_result([{"res_id": res_id}] if res_id else []))

        return TransportResponse(status=200, payload=rpc_error(f"Unknown method {op}"))

    def _issue_api_key(self, params: Dict[str, Any], cookie_header: Optional[str]) -> TransportResponse:
        uid = self._session_uid(cookie_header)
        if uid is None:
            return TransportResponse(status=200, payload={"jsonrpc": "2.0", "id": None, "error": SESSION_EXPIRED_ERROR})
        if self.api_key_error:
            body = {"ok": False, "error": self.api_key_error}
        else:
            key_id = next(self._key_ids)
            body = {"ok": True, "token": f"key-{uid}-{key_id}", "id": key_id}
        payload = body if self.api_key_bare else rpc_result(body)
        return TransportResponse(status=200, payload=payload)


TEST_GROUP_POLICY = GroupPolicy(
    version="test",
    base_groups=["base.group_user", "base.group_partner_manager"],
    role_groups={
        "accountant": ["account.group_account_manager", "account.group_account_user", "analytic.group_analytic_accounting"],
        "user": [],
    },
)


@pytest.fixture(autouse=True)
def fresh_metrics():
    """Every test starts with empty counters."""
    MetricsCollector.reset()
    yield
    MetricsCollector.reset()


@pytest.fixture
def vault():
    return CredentialVault(generate_encryption_key())


@pytest.fixture
def odoo():
    return FakeOdooServer()


@pytest.fixture
def audit_backend():
    return InMemoryAuditBackend()


@pytest.fixture
def audit(audit_backend):
    audit_logger = AuditLogger()
    audit_logger.add_backend(audit_backend)
    return audit_logger


@pytest.fixture
def admin_database(vault):
    return OdooDatabase(
        id="db-1",
        organization_id="org1",
        database_name=DATABASE_NAME,
        admin_login=ADMIN_LOGIN,
        encrypted_admin_password=vault.encrypt(ADMIN_PASSWORD),
    )


@pytest.fixture
async def repo(admin_database):
    repository = InMemoryProvisioningRepository()
    await repository.upsert_local_user(LocalUser(id="u1", email="u1@example.com", name="Ada Lovelace", role="accountant"))
    await repository.upsert_local_user(LocalUser(id="u2", email="u2@example.com"))
    await repository.register_odoo_database(admin_database)
    return repository


@pytest.fixture
def provisioner(repo, vault, odoo, audit):
    return UserProvisioner(
        repository=repo,
        vault=vault,
        transport=odoo,
        group_policy=TEST_GROUP_POLICY,
        audit=audit,
    )
