"""
Session establishment.

A bearer token is verified once; the guardian-supreme capability is looked up
at the same time and carried with the session from then on.
"""

from __future__ import annotations

import logging

from lordre.domain.schema import AppRole, AuthenticatedSession
from lordre.errors import StoreError
from lordre.governance.policies import Actor
from lordre.identity.provider import IdentityProvider
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)


class SessionResolver:
    def __init__(self, identity: IdentityProvider, gateway: StoreGateway) -> None:
        self.identity = identity
        self.gateway = gateway

    def establish(self, token: str) -> AuthenticatedSession:
        """
        Verify ``token`` and build the session it stands for.

        Raises:
            AuthenticationError: invalid or expired token.
        """
        claims = self.identity.verify_token(token)
        try:
            guardian = self.gateway.find_role(
                Actor(user_id=claims.sub), claims.sub, AppRole.GUARDIAN_SUPREME,
            ) is not None
        except StoreError as exc:
            logger.warning("Guardian lookup failed for %s, denying: %s", claims.sub, exc)
            guardian = False
        return AuthenticatedSession(
            user_id=claims.sub,
            email=claims.email,
            is_guardian_supreme=guardian,
        )

    def actor(self, session: AuthenticatedSession) -> Actor:
        """Actor for store calls made on behalf of ``session``."""
        return self.gateway.actor_for(session.user_id)
