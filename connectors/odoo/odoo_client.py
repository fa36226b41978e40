"""Odoo Remote Call Executor.

Runs a single model method through /web/dataset/call_kw with an active
session. When a call fails because the session expired, the executor
re-authenticates once with the supplied admin credentials and re-issues the
same call; the bound lives in SessionRefreshPolicy, not in recursion.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import ValidationError

from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_models import AdminCredentials, RemoteSession, parse_envelope, validate_result
from connectors.odoo.odoo_transport import CALL_KW_PATH, OdooTransport, TransportError
from core.observability.logging import get_logger
from core.observability.metrics import record_remote_call, record_session_refresh
from core.provisioning.errors import RemoteOperationFailed

logger = get_logger(__name__)

T = TypeVar("T")


SESSION_EXPIRED_SIGNATURES = (
    "session expired",
    "sessionexpiredexception",
    "session_expired",
)


def is_session_expired_error(message: Optional[str]) -> bool:
    """Check whether an error message means the Odoo session is gone."""
    if not message:
        return False
    lowered = message.lower()
    return any(signature in lowered for signature in SESSION_EXPIRED_SIGNATURES)


@dataclass(frozen=True)
class SessionRefreshPolicy:
    """Bound on attempts for one logical call.

    The first attempt uses the caller's session; every further attempt is
    preceded by a re-authentication. Only session-expiry failures qualify.
    """
    max_attempts: int = 2
    kind: str = "session-refresh"

    def allows_retry(self, attempt: int, error: RemoteOperationFailed, can_refresh: bool) -> bool:
        """Whether attempt (1-based) may be followed by a refresh and another try."""
        return can_refresh and attempt < self.max_attempts and is_session_expired_error(error.message)


class RemoteCallExecutor:
    """Executes call_kw requests with bounded self-healing.

    Usage:
        executor = RemoteCallExecutor(transport, authenticator)
        rows = await executor.call(
            session, "res.users", "search_read",
            args=[[["login", "=", "u1@example.com"]]],
            kwargs={"fields": ["id", "active"], "limit": 1},
            result_type=List[RemoteUserRef],
            admin_credentials=admin,
        )
    """

    def __init__(self, transport: OdooTransport, authenticator: SessionAuthenticator):
        self.transport = transport
        self.authenticator = authenticator

    async def call(
        self,
        session: RemoteSession,
        model: str,
        method: str,
        args: Optional[List[Any]] = None,
        kwargs: Optional[Dict[str, Any]] = None,
        result_type: Type[T] = Any,
        admin_credentials: Optional[AdminCredentials] = None,
        policy: SessionRefreshPolicy = SessionRefreshPolicy(),
        on_session_refresh: Optional[Callable[[RemoteSession], None]] = None,
    ) -> T:
        """Call model.method and validate the result against result_type.

        Args:
            session: Active session to use for the first attempt
            model: Odoo model name (e.g., "res.users")
            method: Model method (e.g., "write")
            args: Positional arguments
            kwargs: Keyword arguments
            result_type: Expected result shape
            admin_credentials: Enables re-authentication on session expiry
            policy: Retry bound
            on_session_refresh: Receives the replacement session after a
                re-authentication, so callers can drop the expired one

        Raises:
            RemoteOperationFailed: On any failure that is not healed
            AuthenticationFailed: If the re-authentication itself fails
        """
        attempt = 1
        current = session
        while True:
            try:
                result = await self._attempt(current, model, method, args or [], kwargs or {}, result_type)
                record_remote_call(model, method, success=True)
                return result
            except RemoteOperationFailed as e:
                record_remote_call(model, method, success=False)
                if not policy.allows_retry(attempt, e, admin_credentials is not None):
                    raise

                logger.warning(
                    f"Session expired during {model}.{method}, re-authenticating",
                    extra_fields={"attempt": attempt, "policy": policy.kind},
                )
                record_session_refresh(model, method)
                current = await self.authenticator.authenticate(
                    admin_credentials.database_name,
                    admin_credentials.admin_login,
                    admin_credentials.admin_password,
                )
                if on_session_refresh is not None:
                    on_session_refresh(current)
                attempt += 1

    async def _attempt(
        self,
        session: RemoteSession,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Dict[str, Any],
        result_type: Type[T],
    ) -> T:
        params = {"model": model, "method": method, "args": args, "kwargs": kwargs}

        try:
            response = await self.transport.post_json(
                CALL_KW_PATH,
                params,
                cookie_header=session.cookie_header,
                timeout_seconds=self.transport.config.call_timeout_seconds,
            )
        except TransportError as e:
            raise RemoteOperationFailed(
                f"{model}.{method} request failed: {e}",
                model=model,
                method=method,
                details={"timed_out": e.timed_out},
            )

        if not response.ok:
            raise RemoteOperationFailed(
                f"{model}.{method} returned HTTP {response.status}",
                model=model,
                method=method,
                status_code=response.status,
            )

        try:
            envelope = parse_envelope(response.payload)
        except ValidationError as e:
            raise RemoteOperationFailed(
                f"{model}.{method} returned a malformed envelope: {e.error_count()} validation errors",
                model=model,
                method=method,
                status_code=response.status,
            )

        if envelope.error is not None:
            raise RemoteOperationFailed(
                f"{model}.{method} failed: {envelope.error_message}",
                model=model,
                method=method,
                status_code=response.status,
            )

        if envelope.result is None:
            raise RemoteOperationFailed(
                f"{model}.{method} returned no result",
                model=model,
                method=method,
                status_code=response.status,
            )

        try:
            return validate_result(envelope.result, result_type)
        except ValidationError as e:
            raise RemoteOperationFailed(
                f"{model}.{method} result did not match expected schema: {e.error_count()} validation errors",
                model=model,
                method=method,
                status_code=response.status,
            )
