"""Odoo JSON-RPC transport.

Low-level HTTP layer for the Odoo web endpoints. Posts JSON-RPC envelopes,
captures response cookies and returns the raw decoded body. It knows nothing
about Odoo semantics; interpretation happens in odoo_auth and odoo_client.
"""

import asyncio
import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from core.observability.logging import get_logger

logger = get_logger(__name__)


AUTHENTICATE_PATH = "/web/session/authenticate"
CALL_KW_PATH = "/web/dataset/call_kw"
API_KEY_PATH = "/api_key_service/generate"


class TransportError(Exception):
    """Network-level failure (connection refused, reset, timeout)."""

    def __init__(self, message: str, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


@dataclass
class OdooApiConfig:
    """Configuration for talking to one Odoo server."""
    base_url: str = "http://localhost:8069"
    auth_timeout_seconds: int = 30
    call_timeout_seconds: int = 60
    api_key_scope: str = "rpc"

    def __post_init__(self):
        self.base_url = self.base_url.rstrip("/")

    @classmethod
    def from_env(cls) -> "OdooApiConfig":
        """Build config from ODOO_* environment variables."""
        return cls(
            base_url=os.getenv("ODOO_URL", "http://localhost:8069"),
            auth_timeout_seconds=int(os.getenv("ODOO_AUTH_TIMEOUT_SECONDS", "30")),
            call_timeout_seconds=int(os.getenv("ODOO_CALL_TIMEOUT_SECONDS", "60")),
            api_key_scope=os.getenv("ODOO_API_KEY_SCOPE", "rpc"),
        )

    def web_login_url(self, database_name: str) -> str:
        """URL of the Odoo web login page preselecting a database."""
        return f"{self.base_url}/web/login?db={database_name}"


@dataclass
class TransportResponse:
    """Raw response from an Odoo endpoint."""
    status: int
    payload: Any = None
    cookies: List[str] = field(default_factory=list)
    text: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


def build_rpc_envelope(params: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap params in a JSON-RPC 2.0 call envelope."""
    return {
        "jsonrpc": "2.0",
        "method": "call",
        "params": params,
        "id": None,
    }


def extract_cookies(set_cookie_headers: List[str]) -> List[str]:
    """Reduce Set-Cookie header values to their name=value pairs."""
    cookies = []
    for header in set_cookie_headers:
        pair = header.split(";", 1)[0].strip()
        if pair:
            cookies.append(pair)
    return cookies


class OdooTransport:
    """aiohttp-based JSON-RPC transport.

    Usage:
        transport = OdooTransport(OdooApiConfig(base_url="https://erp.example.com"))
        response = await transport.post_json(AUTHENTICATE_PATH, {"db": "acme", ...})
        await transport.close()
    """

    def __init__(self, config: OdooApiConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "OdooTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            # Cookies are passed explicitly per call; never share a jar between sagas
            self._session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
        return self._session

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def post_json(
        self,
        path: str,
        params: Dict[str, Any],
        cookie_header: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ) -> TransportResponse:
        """POST a JSON-RPC envelope and decode the response.

        Args:
            path: Endpoint path (e.g., "/web/dataset/call_kw")
            params: JSON-RPC params
            cookie_header: Optional Cookie header value
            timeout_seconds: Request timeout (defaults to call timeout)

        Returns:
            TransportResponse with status, decoded JSON body and cookies

        Raises:
            TransportError: On connection failure or timeout
        """
        url = f"{self.config.base_url}{path}"
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if cookie_header:
            headers["Cookie"] = cookie_header

        seconds = timeout_seconds or self.config.call_timeout_seconds
        timeout = aiohttp.ClientTimeout(total=seconds)

        try:
            async with self._get_session().post(
                url,
                json=build_rpc_envelope(params),
                headers=headers,
                timeout=timeout,
            ) as response:
                text = await response.text()
                try:
                    payload = json.loads(text) if text else None
                except json.JSONDecodeError:
                    payload = None

                return TransportResponse(
                    status=response.status,
                    payload=payload,
                    cookies=extract_cookies(response.headers.getall("Set-Cookie", [])),
                    text=text,
                )
        except asyncio.TimeoutError:
            logger.warning(f"Odoo request to {path} timed out after {seconds}s")
            raise TransportError(f"Odoo request to {path} timed out after {seconds} seconds", timed_out=True)
        except aiohttp.ClientError as e:
            logger.warning(f"Odoo request to {path} failed: {type(e).__name__}: {e}")
            raise TransportError(f"Odoo request to {path} failed: {e}")
