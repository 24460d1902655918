# app/api/auth.py
from datetime import datetime

from fastapi import APIRouter, Depends, Header, Response
from pydantic import BaseModel

from app.api.deps import get_authority, get_binding_context, get_directory, require_principal
from app.core.errors import NotFound, Unauthenticated
from app.core.identity import UserDirectory
from app.core.security import Principal, extract_bearer
from app.core.tokens import TokenAuthority

router = APIRouter()


class LoginInput(BaseModel):
    username: str
    password: str


class LoginOutput(BaseModel):
    token: str
    token_id: str
    expires_at: datetime


class PrincipalOutput(BaseModel):
    subject: str
    roles: list[str]
    enabled: bool


@router.post("/login", response_model=LoginOutput)
async def login(
    body: LoginInput,
    binding_context: str | None = Depends(get_binding_context),
    directory: UserDirectory = Depends(get_directory),
    authority: TokenAuthority = Depends(get_authority),
):
    if not binding_context:
        raise Unauthenticated("missing-context")
    if not await directory.check_password(body.username, body.password):
        raise Unauthenticated("bad-password")
    try:
        identity = await directory.load_roles(body.username)
    except NotFound as e:
        # removed between the password check and now
        raise Unauthenticated("unknown-subject") from e
    if not identity.enabled:
        raise Unauthenticated("account-disabled")

    issued = await authority.issue(body.username, binding_context)
    return LoginOutput(token=issued.token, token_id=issued.credential_id, expires_at=issued.expires_at)


@router.post("/logout", status_code=204)
async def logout(
    authorization: str | None = Header(None),
    authority: TokenAuthority = Depends(get_authority),
):
    token = extract_bearer(authorization)
    if token is None:
        raise Unauthenticated("no-bearer-token")
    await authority.invalidate(token)
    return Response(status_code=204)


@router.get("/me", response_model=PrincipalOutput)
async def me(principal: Principal = Depends(require_principal)):
    return PrincipalOutput(
        subject=principal.subject,
        roles=sorted(principal.roles),
        enabled=principal.enabled,
    )
