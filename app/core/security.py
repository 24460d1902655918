# app/core/security.py
from __future__ import annotations

from dataclasses import dataclass

from app.core.errors import AuthError, NotFound, Unauthenticated
from app.core.identity import IdentityResolver
from app.core.logging import get_logger
from app.core.tokens import TokenAuthority

logger = get_logger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class Principal:
    subject: str
    roles: frozenset[str]
    enabled: bool

    def has_role(self, role: str) -> bool:
        return role in self.roles


def extract_bearer(authorization: str | None) -> str | None:
    """Token part of an ``Authorization: Bearer <token>`` header, if any."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class RequestAuthenticator:
    """Per-request adapter from raw headers to a Principal.

    Holds no per-request state. Never raises: any failure yields None and the
    authorization layer decides whether the request needed a principal.
    """

    def __init__(self, authority: TokenAuthority, resolver: IdentityResolver) -> None:
        self.authority = authority
        self.resolver = resolver

    async def authenticate(self, authorization: str | None, binding_context: str | None) -> Principal | None:
        token = extract_bearer(authorization)
        if token is None:
            return None

        try:
            subject = await self.authority.validate(token, binding_context)
            try:
                identity = await self.resolver.load_roles(subject)
            except NotFound as e:
                raise Unauthenticated("unknown-subject") from e
        except AuthError as e:
            logger.info("request_unauthenticated", reason=e.reason)
            return None
        except Exception:
            logger.exception("request_authentication_failed")
            return None

        if not identity.enabled:
            logger.warning("request_unauthenticated", reason="account-disabled", subject=subject)
            return None

        return Principal(subject=subject, roles=identity.roles, enabled=identity.enabled)
