"""Odoo API Key Issuer.

Odoo only lets a user create API keys for themselves, so issuance opens a
session as the target user (with the freshly set password) and calls the
dedicated key service endpoint.
"""

from datetime import datetime

from pydantic import ValidationError

from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_models import ApiKeyIssueResult, parse_envelope, validate_result
from connectors.odoo.odoo_transport import API_KEY_PATH, OdooTransport, TransportError
from core.observability.logging import get_logger
from core.provisioning.errors import RemoteOperationFailed

logger = get_logger(__name__)


API_KEY_NAME_PREFIX = "provisioning"


def build_key_name(login: str, now: datetime = None) -> str:
    """Human-readable key label shown in the user's Odoo preferences."""
    stamp = int((now or datetime.utcnow()).timestamp() * 1000)
    return f"{API_KEY_NAME_PREFIX}-{login}-{stamp}"


class ApiKeyIssuer:
    """Issues an RPC API key for a provisioned user.

    Usage:
        issuer = ApiKeyIssuer(transport, authenticator)
        token = await issuer.issue("acme", "u1@example.com", password)
    """

    def __init__(self, transport: OdooTransport, authenticator: SessionAuthenticator):
        self.transport = transport
        self.authenticator = authenticator

    async def issue(self, database_name: str, login: str, password: str) -> str:
        """Issue a key for login and return the plaintext token.

        Raises:
            AuthenticationFailed: The target user could not log in
            RemoteOperationFailed: The key service refused or misbehaved
        """
        session = await self.authenticator.authenticate(database_name, login, password)
        key_name = build_key_name(login)
        params = {"name": key_name, "scope": self.transport.config.api_key_scope}

        try:
            response = await self.transport.post_json(
                API_KEY_PATH,
                params,
                cookie_header=session.cookie_header,
                timeout_seconds=self.transport.config.call_timeout_seconds,
            )
        except TransportError as e:
            raise RemoteOperationFailed(f"API key request failed: {e}", details={"timed_out": e.timed_out})

        if not response.ok:
            raise RemoteOperationFailed(
                f"API key service returned HTTP {response.status}",
                status_code=response.status,
            )

        try:
            envelope = parse_envelope(response.payload)
            if envelope.error is not None:
                raise RemoteOperationFailed(
                    f"API key service error: {envelope.error_message}",
                    status_code=response.status,
                )
            # The service may answer bare or wrapped in a JSON-RPC result
            body = envelope.result if envelope.result is not None else response.payload
            result = validate_result(body, ApiKeyIssueResult)
        except ValidationError as e:
            raise RemoteOperationFailed(
                f"Malformed API key response: {e.error_count()} validation errors",
                status_code=response.status,
            )

        if not result.ok or not result.token:
            raise RemoteOperationFailed(
                f"API key service refused: {result.error or 'no token returned'}",
                status_code=response.status,
            )

        logger.info(f"API key issued for {login}", extra_fields={"key_name": key_name, "key_id": result.id})
        return result.token
