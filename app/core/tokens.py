# app/core/tokens.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.core.crypto import TokenClaims, TokenSigner
from app.core.errors import NotFound, StoreUnavailable, Unauthenticated, VerificationError
from app.core.logging import get_logger
from app.db.store import CredentialStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class IssuedToken:
    token: str
    credential_id: str
    expires_at: datetime


def _utcnow() -> datetime:
    # JWT timestamps have second precision, keep the record in step with them
    return datetime.now(timezone.utc).replace(microsecond=0)


class TokenAuthority:
    """Couples signature verification with the server-side credential record.

    A token is usable only when its signature and expiry verify AND its
    record exists, is enabled, is unexpired and was issued for the exact
    binding context presented now.
    """

    def __init__(self, signer: TokenSigner, store: CredentialStore, ttl: timedelta) -> None:
        self.signer = signer
        self.store = store
        self.ttl = ttl

    async def issue(self, subject: str, binding_context: str) -> IssuedToken:
        """Create the record first, then sign; no record means no token.

        Store and signing failures propagate (StoreUnavailable, SigningError).
        """
        now = _utcnow()
        expires_at = now + self.ttl

        record = await self.store.create(subject, binding_context, expires_at)
        token = self.signer.sign(record.id, subject, now, expires_at)

        logger.info("token_issued", subject=subject, credential_id=record.id, expires_at=expires_at.isoformat())
        return IssuedToken(token=token, credential_id=record.id, expires_at=expires_at)

    def _verify(self, token: str) -> TokenClaims:
        try:
            return self.signer.verify(token)
        except VerificationError as e:
            # expired and forged look the same from outside
            logger.warning("token_rejected", reason=e.reason)
            raise Unauthenticated(e.reason) from e

    async def validate(self, token: str, binding_context: str | None) -> str:
        """Return the subject of a usable token or raise Unauthenticated."""
        claims = self._verify(token)

        try:
            record = await self.store.get(claims.id)
        except NotFound as e:
            logger.warning("token_rejected", reason="unknown-credential", credential_id=claims.id)
            raise Unauthenticated("unknown-credential") from e
        except StoreUnavailable as e:
            logger.error("token_rejected", reason="store-unavailable", credential_id=claims.id)
            raise Unauthenticated("store-unavailable") from e

        if not record.enabled:
            logger.warning("token_rejected", reason="revoked", credential_id=record.id, subject=record.subject)
            raise Unauthenticated("revoked")

        if record.expires_at <= datetime.now(timezone.utc):
            logger.warning("token_rejected", reason="expired", credential_id=record.id, subject=record.subject)
            raise Unauthenticated("expired")

        if binding_context is None or record.binding_context != binding_context:
            logger.warning(
                "token_rejected",
                reason="context-mismatch",
                credential_id=record.id,
                subject=record.subject,
                expected=record.binding_context,
                received=binding_context,
            )
            raise Unauthenticated("context-mismatch")

        return record.subject

    async def invalidate(self, token: str) -> None:
        """Disable the token's record (logout).

        The binding context is not checked: a holder can always revoke its
        own token. Raises Unauthenticated for tokens that do not verify and
        NotFound when the record is gone.
        """
        claims = self._verify(token)
        record = await self.store.get(claims.id)
        await self.store.disable(record.id)
        logger.info("token_invalidated", credential_id=record.id, subject=record.subject)
