"""Odoo wire models.

Every JSON payload coming back from Odoo is validated here before any other
module looks at it. Session and credential holders used by the connector
also live here.
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, StrictBool, StrictInt, TypeAdapter


T = TypeVar("T")


# =============================================================================
# Session & Credentials
# =============================================================================

@dataclass(frozen=True)
class RemoteSession:
    """Authenticated Odoo web session.

    Owned by the call that requested it; never persisted or pooled.
    """
    session_id: str
    remote_user_id: int
    cookies: List[str] = field(default_factory=list)

    @property
    def cookie_header(self) -> str:
        """Cookie header value, falling back to a bare session_id cookie."""
        if self.cookies:
            return "; ".join(self.cookies)
        return f"session_id={self.session_id}"


@dataclass(frozen=True)
class AdminCredentials:
    """Decrypted admin login for one Odoo database.

    Held in memory for a single saga invocation only. The password is
    excluded from repr so it cannot leak through logs or tracebacks.
    """
    database_name: str
    admin_login: str
    admin_password: str = field(repr=False)


# =============================================================================
# JSON-RPC Envelope
# =============================================================================

class RpcErrorBody(BaseModel):
    """Structured JSON-RPC error object."""
    code: Optional[int] = None
    message: Optional[str] = None
    data: Optional[Any] = None

    class Config:
        extra = "allow"


class RpcEnvelope(BaseModel):
    """JSON-RPC response envelope; error may be structured or free text."""
    error: Optional[Union[RpcErrorBody, str]] = None
    result: Optional[Any] = None

    class Config:
        extra = "allow"

    @property
    def error_message(self) -> Optional[str]:
        """Normalize both error shapes into one message string."""
        if self.error is None:
            return None
        if isinstance(self.error, str):
            return self.error
        parts = [self.error.message or ""]
        if isinstance(self.error.data, dict):
            # Odoo puts the exception class and the real message under data
            for key in ("name", "message"):
                value = self.error.data.get(key)
                if value and value not in parts:
                    parts.append(str(value))
        text = " | ".join(p for p in parts if p)
        return text or self.error.model_dump_json()


def parse_envelope(payload: Any) -> RpcEnvelope:
    """Validate a raw JSON-RPC response body.

    Raises:
        ValidationError: If the payload does not match the envelope shape
    """
    return RpcEnvelope.model_validate(payload)


def validate_result(result: Any, result_type: Type[T]) -> T:
    """Validate an envelope result against the expected result type."""
    return TypeAdapter(result_type).validate_python(result)


# =============================================================================
# Result Schemas
# =============================================================================

class AuthResult(BaseModel):
    """Result of /web/session/authenticate.

    Odoo answers uid=false for bad credentials, hence the strict union.
    Newer Odoo releases only send session_id as a cookie.
    """
    uid: Optional[Union[StrictInt, StrictBool]] = None
    session_id: Optional[str] = None
    db: Optional[str] = None

    class Config:
        extra = "allow"

    @property
    def user_id(self) -> Optional[int]:
        if isinstance(self.uid, bool) or not self.uid:
            return None
        return self.uid


class RemoteUserRef(BaseModel):
    """A res.users row with its archive flag."""
    id: int
    active: bool = True


class ModelDataRef(BaseModel):
    """An ir.model.data row pointing at the referenced record."""
    res_id: int


class ApiKeyIssueResult(BaseModel):
    """Result of the dedicated API key issuance endpoint."""
    ok: bool
    token: Optional[str] = None
    id: Optional[int] = None
    error: Optional[str] = None

