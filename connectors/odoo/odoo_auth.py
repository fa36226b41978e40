"""Odoo Session Authenticator.

Exchanges a database name plus login/password for a short-lived web
session. Sessions are never cached; every top-level operation asks for a
fresh one.
"""

from typing import Optional

from pydantic import ValidationError

from connectors.odoo.odoo_models import AuthResult, RemoteSession, parse_envelope, validate_result
from connectors.odoo.odoo_transport import AUTHENTICATE_PATH, OdooTransport, TransportError
from core.observability.logging import get_logger
from core.observability.metrics import record_authentication
from core.provisioning.errors import AuthenticationFailed

logger = get_logger(__name__)


SESSION_COOKIE = "session_id"


def _session_id_from_cookies(cookies) -> Optional[str]:
    prefix = f"{SESSION_COOKIE}="
    for cookie in cookies:
        if cookie.startswith(prefix):
            value = cookie[len(prefix):]
            if value:
                return value
    return None


class SessionAuthenticator:
    """Authenticates against /web/session/authenticate.

    Usage:
        authenticator = SessionAuthenticator(transport)
        session = await authenticator.authenticate("acme", "admin", password)
    """

    def __init__(self, transport: OdooTransport):
        self.transport = transport

    async def authenticate(self, database_name: str, login: str, password: str) -> RemoteSession:
        """Open a session for login on database_name.

        Returns:
            RemoteSession with the full cookie set

        Raises:
            AuthenticationFailed: Bad credentials, error envelope, non-2xx
                status, malformed body, missing uid or session id, transport
                failure or timeout
        """
        try:
            session = await self._authenticate(database_name, login, password)
        except AuthenticationFailed as e:
            record_authentication(success=False)
            logger.warning(
                f"Authentication failed for {login} on {database_name}: {e.message}",
                extra_fields={"status_code": e.status_code},
            )
            raise
        record_authentication(success=True)
        logger.debug(f"Authenticated {login} on {database_name} as uid {session.remote_user_id}")
        return session

    async def _authenticate(self, database_name: str, login: str, password: str) -> RemoteSession:
        params = {"db": database_name, "login": login, "password": password}

        try:
            response = await self.transport.post_json(
                AUTHENTICATE_PATH,
                params,
                timeout_seconds=self.transport.config.auth_timeout_seconds,
            )
        except TransportError as e:
            raise AuthenticationFailed(f"Authentication request failed: {e}", details={"timed_out": e.timed_out})

        if not response.ok:
            raise AuthenticationFailed(
                f"Authentication returned HTTP {response.status}",
                status_code=response.status,
            )

        try:
            envelope = parse_envelope(response.payload)
        except ValidationError as e:
            raise AuthenticationFailed(
                f"Malformed authentication response: {e.error_count()} validation errors",
                status_code=response.status,
            )

        if envelope.error is not None:
            raise AuthenticationFailed(
                f"Authentication rejected: {envelope.error_message}",
                status_code=response.status,
            )

        if envelope.result is None:
            raise AuthenticationFailed("Authentication response has no result", status_code=response.status)

        try:
            result = validate_result(envelope.result, AuthResult)
        except ValidationError as e:
            raise AuthenticationFailed(
                f"Malformed authentication result: {e.error_count()} validation errors",
                status_code=response.status,
            )

        uid = result.user_id
        if uid is None:
            raise AuthenticationFailed("Invalid credentials: no uid returned", status_code=response.status)

        session_id = result.session_id or _session_id_from_cookies(response.cookies)
        if not session_id:
            raise AuthenticationFailed("No session id in result or cookies", status_code=response.status)

        return RemoteSession(session_id=session_id, remote_user_id=uid, cookies=list(response.cookies))
