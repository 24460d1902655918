from fastapi import Depends, Header, Request

from app.core.config import settings
from app.core.errors import Forbidden, Unauthenticated
from app.core.identity import UserDirectory
from app.core.security import Principal, RequestAuthenticator
from app.core.tokens import TokenAuthority
from app.db.store import CredentialStore


def get_authority(request: Request) -> TokenAuthority:
    return request.app.state.authority


def get_store(request: Request) -> CredentialStore:
    return request.app.state.store


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_binding_context(request: Request) -> str | None:
    return request.headers.get(settings.binding_header)


async def current_principal(
    request: Request,
    authorization: str | None = Header(None),
) -> Principal | None:
    authenticator: RequestAuthenticator = request.app.state.authenticator
    return await authenticator.authenticate(authorization, get_binding_context(request))


async def require_principal(principal: Principal | None = Depends(current_principal)) -> Principal:
    if principal is None:
        raise Unauthenticated("no-principal")
    return principal


def require_self_or_role(role: str):
    """Allow the user named in the path, or anyone holding ``role``."""

    async def _check(username: str, principal: Principal = Depends(require_principal)) -> Principal:
        if principal.subject != username and not principal.has_role(role):
            raise Forbidden(f"{principal.subject} may not act on {username}")
        return principal

    return _check
