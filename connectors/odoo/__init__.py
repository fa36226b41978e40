"""Odoo connector.

Provides:
- OdooTransport: aiohttp JSON-RPC transport
- SessionAuthenticator: /web/session/authenticate
- RemoteCallExecutor: call_kw with one session refresh on expiry
- GroupResolver: group external ids to res.groups ids
- ApiKeyIssuer: per-user API key issuance
"""

from connectors.odoo.odoo_transport import (
    OdooApiConfig,
    OdooTransport,
    TransportError,
    TransportResponse,
)
from connectors.odoo.odoo_models import (
    AdminCredentials,
    RemoteSession,
)
from connectors.odoo.odoo_auth import SessionAuthenticator
from connectors.odoo.odoo_client import (
    RemoteCallExecutor,
    SessionRefreshPolicy,
    is_session_expired_error,
)
from connectors.odoo.odoo_groups import GroupResolution, GroupResolver
from connectors.odoo.odoo_apikeys import ApiKeyIssuer

__all__ = [
    "OdooApiConfig",
    "OdooTransport",
    "TransportError",
    "TransportResponse",
    "AdminCredentials",
    "RemoteSession",
    "SessionAuthenticator",
    "RemoteCallExecutor",
    "SessionRefreshPolicy",
    "is_session_expired_error",
    "GroupResolution",
    "GroupResolver",
    "ApiKeyIssuer",
]
