"""
Identity Provider — account lifecycle and session issuing.

``IdentityProvider`` is the surface the core consumes: token verification,
password sign-in and the administrative create/update/delete primitives.
``LocalIdentityProvider`` keeps accounts in the ``identities`` table of the
store; the hosted implementation lives in ``lordre.integrations.gotrue_client``.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import os
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lordre.domain.schema import Identity, TokenClaims
from lordre.errors import AuthenticationError, IdentityProviderError
from lordre.identity.tokens import TokenVerifier
from lordre.store.database import Database
from lordre.store.models import IdentityDB

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PBKDF2_ITERATIONS = 260_000


def hash_password(password: str, salt: bytes | None = None) -> str:
    salt = salt or os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, iterations, salt_hex, digest_hex = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt_hex), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), digest_hex)


class IdentityProvider(ABC):
    """Abstract identity provider."""

    def __init__(self, tokens: TokenVerifier) -> None:
        self.tokens = tokens

    def verify_token(self, token: str) -> TokenClaims:
        """Validate a bearer token and return its claims."""
        return self.tokens.verify(token)

    @abstractmethod
    def create_user(self, email: str, password: str, email_confirm: bool = True) -> Identity:
        """Create an account. Raises IdentityProviderError on failure."""

    @abstractmethod
    def update_user(
        self,
        user_id: str,
        email: str | None = None,
        password: str | None = None,
    ) -> Identity:
        """Change an account's credentials. Raises IdentityProviderError on failure."""

    @abstractmethod
    def delete_user(self, user_id: str) -> None:
        """Delete an account; dependent store rows cascade."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> str:
        """Exchange credentials for a bearer token."""


class LocalIdentityProvider(IdentityProvider):
    """Identity provider backed by the store's ``identities`` table."""

    def __init__(self, database: Database, tokens: TokenVerifier) -> None:
        super().__init__(tokens)
        self.database = database

    def create_user(self, email: str, password: str, email_confirm: bool = True) -> Identity:
        if len(password) < MIN_PASSWORD_LENGTH:
            raise IdentityProviderError(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )
        try:
            with self.database.session() as session:
                row = IdentityDB(
                    email=email.strip().lower(),
                    password_hash=hash_password(password),
                    email_confirmed=email_confirm,
                )
                session.add(row)
                session.flush()
                identity = Identity.model_validate(row)
        except IntegrityError as exc:
            raise IdentityProviderError(
                "A user with this email address has already been registered"
            ) from exc
        except SQLAlchemyError as exc:
            raise IdentityProviderError(str(exc)) from exc
        logger.info("Identity created: id=%s", identity.id)
        return identity

    def update_user(
        self,
        user_id: str,
        email: str | None = None,
        password: str | None = None,
    ) -> Identity:
        if password is not None and len(password) < MIN_PASSWORD_LENGTH:
            raise IdentityProviderError(
                f"Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )
        try:
            with self.database.session() as session:
                row = session.get(IdentityDB, user_id)
                if row is None:
                    raise IdentityProviderError("User not found")
                if email is not None:
                    row.email = email.strip().lower()
                if password is not None:
                    row.password_hash = hash_password(password)
                session.flush()
                identity = Identity.model_validate(row)
        except IntegrityError as exc:
            raise IdentityProviderError(
                "A user with this email address has already been registered"
            ) from exc
        except SQLAlchemyError as exc:
            raise IdentityProviderError(str(exc)) from exc
        logger.info("Identity updated: id=%s", user_id)
        return identity

    def delete_user(self, user_id: str) -> None:
        try:
            with self.database.session() as session:
                row = session.get(IdentityDB, user_id)
                if row is None:
                    raise IdentityProviderError("User not found")
                session.delete(row)
        except SQLAlchemyError as exc:
            raise IdentityProviderError(str(exc)) from exc
        logger.info("Identity deleted: id=%s", user_id)

    def sign_in(self, email: str, password: str) -> str:
        try:
            with self.database.session() as session:
                row = session.execute(
                    select(IdentityDB).where(IdentityDB.email == email.strip().lower())
                ).scalar_one_or_none()
                identity = Identity.model_validate(row) if row is not None else None
                password_hash = row.password_hash if row is not None else None
        except SQLAlchemyError as exc:
            raise IdentityProviderError(str(exc)) from exc

        if identity is None or not verify_password(password, password_hash):
            raise AuthenticationError("Invalid login credentials")
        return self.tokens.issue(identity.id, identity.email)
