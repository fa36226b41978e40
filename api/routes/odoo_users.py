"""Odoo user endpoints.

Provision, deactivate and inspect the Odoo identity mirrored for a local
user. The organization is taken from the X-Organization-Id header.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request
from pydantic import BaseModel, Field

from core.provisioning.provisioner import UserProvisioner
from core.provisioning.errors import NotFound


router = APIRouter()


def get_provisioner(request: Request) -> UserProvisioner:
    """Provisioner attached to the app at startup."""
    return request.app.state.provisioner


class ProvisionRequest(BaseModel):
    """Optional body for provisioning."""
    role: Optional[str] = Field(None, description="Role override (admin, accountant, manager, salesperson, user)")


class WarningModel(BaseModel):
    code: str
    message: str
    details: dict = {}


class ProvisionResponse(BaseModel):
    """Provisioning outcome. The credential itself is never returned here."""
    local_user_id: str
    remote_uid: int
    remote_login: str
    has_api_key: bool
    degraded: bool
    warnings: List[WarningModel] = []


class DeactivateResponse(BaseModel):
    local_user_id: str
    status: str


class CredentialsResponse(BaseModel):
    """Credential metadata; secret only with reveal=true."""
    local_user_id: str
    database_name: str
    remote_uid: int
    has_api_key: bool
    credential: Optional[str] = None
    warnings: List[WarningModel] = []


class WebUrlResponse(BaseModel):
    local_user_id: str
    web_url: str


class ExistsResponse(BaseModel):
    local_user_id: str
    exists: bool


@router.post("/{user_id}/provision", response_model=ProvisionResponse)
async def provision_user(
    user_id: str,
    body: Optional[ProvisionRequest] = None,
    organization_id: str = Header(..., alias="X-Organization-Id"),
    provisioner: UserProvisioner = Depends(get_provisioner),
) -> ProvisionResponse:
    """Provision (or re-confirm) the user's Odoo identity."""
    result = await provisioner.provision_user(user_id, organization_id, role=body.role if body else None)
    return ProvisionResponse(
        local_user_id=user_id,
        remote_uid=result.remote_uid,
        remote_login=result.remote_login,
        has_api_key=result.has_api_key,
        degraded=result.degraded,
        warnings=[WarningModel(**w.to_dict()) for w in result.warnings],
    )


@router.post("/{user_id}/deactivate", response_model=DeactivateResponse)
async def deactivate_user(
    user_id: str,
    organization_id: str = Header(..., alias="X-Organization-Id"),
    provisioner: UserProvisioner = Depends(get_provisioner),
) -> DeactivateResponse:
    """Deactivate the user's Odoo identity."""
    await provisioner.deactivate_user(user_id, organization_id)
    return DeactivateResponse(local_user_id=user_id, status="inactive")


@router.get("/{user_id}/credentials", response_model=CredentialsResponse)
async def get_credentials(
    user_id: str,
    reveal: bool = Query(False, description="Include the plaintext credential"),
    organization_id: str = Header(..., alias="X-Organization-Id"),
    provisioner: UserProvisioner = Depends(get_provisioner),
) -> CredentialsResponse:
    """Best RPC credential for the user, upgraded to an API key when possible."""
    credentials = await provisioner.get_user_credentials(user_id, organization_id)
    if credentials is None:
        raise NotFound("Odoo user not found", {"local_user_id": user_id})

    return CredentialsResponse(
        local_user_id=user_id,
        database_name=credentials.database_name,
        remote_uid=credentials.remote_uid,
        has_api_key=credentials.is_api_key,
        credential=credentials.credential if reveal else None,
        warnings=[WarningModel(**w.to_dict()) for w in credentials.warnings],
    )


@router.get("/{user_id}/web-url", response_model=WebUrlResponse)
async def get_web_url(
    user_id: str,
    organization_id: str = Header(..., alias="X-Organization-Id"),
    provisioner: UserProvisioner = Depends(get_provisioner),
) -> WebUrlResponse:
    url = await provisioner.get_web_login_url(user_id, organization_id)
    return WebUrlResponse(local_user_id=user_id, web_url=url)


@router.get("/{user_id}/exists", response_model=ExistsResponse)
async def user_exists(
    user_id: str,
    organization_id: str = Header(..., alias="X-Organization-Id"),
    provisioner: UserProvisioner = Depends(get_provisioner),
) -> ExistsResponse:
    exists = await provisioner.user_exists(user_id, organization_id)
    return ExistsResponse(local_user_id=user_id, exists=exists)
