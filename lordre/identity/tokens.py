"""
Bearer token issuing and verification.

Tokens are HS256 JWTs in the shape the hosted auth service issues: ``sub`` is
the user id, ``aud``/``role`` are ``authenticated``, ``exp`` bounds validity.
The same verifier therefore accepts tokens from the local identity provider
and from GoTrue when both share the JWT secret.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import jwt

from lordre.domain.schema import TokenClaims
from lordre.errors import AuthenticationError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer(authorization: str | None) -> str:
    """Return the raw token from an ``Authorization`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthenticationError("Non autorisé")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError("Non autorisé")
    return token


class TokenVerifier:
    """Signs and verifies session tokens with a shared secret."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        audience: str = "authenticated",
        expiration_minutes: int = 1440,
    ) -> None:
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience
        self.expiration_minutes = expiration_minutes

    def issue(self, user_id: str, email: str | None = None) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": user_id,
            "email": email,
            "aud": self.audience,
            "role": "authenticated",
            "iat": int(now.timestamp()),
            "exp": int((now + timedelta(minutes=self.expiration_minutes)).timestamp()),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenClaims:
        """
        Decode and validate a token.

        Raises:
            AuthenticationError: bad signature, wrong audience, expired, or no subject.
        """
        try:
            decoded = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"require": ["sub", "exp"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token expiré") from exc
        except jwt.InvalidTokenError as exc:
            logger.info("Token rejected: %s", exc)
            raise AuthenticationError("Token invalide") from exc

        if not decoded.get("sub"):
            raise AuthenticationError("Token invalide")

        return TokenClaims(
            sub=str(decoded["sub"]),
            email=decoded.get("email"),
            role=decoded.get("role", "authenticated"),
            exp=decoded.get("exp"),
        )
