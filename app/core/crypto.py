# app/core/crypto.py
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt
from jwt import ExpiredSignatureError, InvalidTokenError

from app.core.errors import Expired, InvalidSignature, SigningError

MIN_KEY_BYTES = 32
HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
REQUIRED_CLAIMS = ["jti", "sub", "iat", "exp"]


@dataclass(frozen=True)
class TokenClaims:
    id: str
    subject: str
    issued_at: datetime
    expires_at: datetime


def decode_secret(secret: str | None) -> bytes:
    """Turn the configured base64 secret into raw key bytes."""
    if not secret:
        raise SigningError("token secret is not configured")
    try:
        key = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SigningError(f"token secret is not valid base64: {e}") from e
    if len(key) < MIN_KEY_BYTES:
        raise SigningError(f"token secret must be at least {MIN_KEY_BYTES} bytes")
    return key


class TokenSigner:
    """HMAC signer/verifier for compact JWTs.

    Knows nothing about revocation: a token that verifies here is only a
    claim set this process produced, not a usable credential.
    """

    def __init__(self, key: bytes, algorithm: str = "HS256") -> None:
        if algorithm not in HMAC_ALGORITHMS:
            raise SigningError(f"unsupported signing algorithm: {algorithm}")
        if len(key) < MIN_KEY_BYTES:
            raise SigningError(f"signing key must be at least {MIN_KEY_BYTES} bytes")
        self._key = key
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings) -> "TokenSigner":
        return cls(decode_secret(settings.token_secret), settings.jwt_alg)

    def sign(self, id: str, subject: str, issued_at: datetime, expires_at: datetime) -> str:
        payload = {
            "jti": id,
            "sub": subject,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
        }
        try:
            return jwt.encode(payload, self._key, algorithm=self.algorithm)
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise SigningError(f"sign-error: {e}") from e

    def verify(self, token: str) -> TokenClaims:
        """Check signature and expiry; raises InvalidSignature or Expired."""
        if not isinstance(token, str) or token.count(".") != 2:
            raise InvalidSignature("malformed")
        try:
            data = jwt.decode(
                token,
                self._key,
                algorithms=[self.algorithm],
                options={"require": REQUIRED_CLAIMS},
            )
        except ExpiredSignatureError as e:
            raise Expired("expired") from e
        except InvalidTokenError as e:
            raise InvalidSignature(f"bad-signature: {e}") from e

        jti, sub = data.get("jti"), data.get("sub")
        if not isinstance(jti, str) or not jti or not isinstance(sub, str):
            raise InvalidSignature("malformed")
        try:
            iat = datetime.fromtimestamp(int(data["iat"]), tz=timezone.utc)
            exp = datetime.fromtimestamp(int(data["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidSignature("malformed") from e
        return TokenClaims(id=jti, subject=sub, issued_at=iat, expires_at=exp)
