"""
Role Resolver — knowledge-base access from role assignments.

Resolution order:

1. no session                → no access
2. guardian-supreme session  → access, not reported as archonte
3. archonte assignment found → access, archonte
4. otherwise                 → no access

Resolution never raises: a store failure resolves to "no access".
"""

from __future__ import annotations

import logging

from lordre.domain.schema import AppRole, AuthenticatedSession, KnowledgeAccess
from lordre.errors import LOrdreError
from lordre.governance.policies import Actor
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)

NO_ACCESS = KnowledgeAccess()


class RoleResolver:
    def __init__(self, gateway: StoreGateway) -> None:
        self.gateway = gateway

    def resolve(self, session: AuthenticatedSession | None) -> KnowledgeAccess:
        if session is None:
            return NO_ACCESS

        if session.is_guardian_supreme:
            return KnowledgeAccess(has_access=True, is_archonte=False, is_guardian_supreme=True)

        try:
            assignment = self.gateway.find_role(
                Actor(user_id=session.user_id), session.user_id, AppRole.ARCHONTE,
            )
        except LOrdreError as exc:
            logger.warning("Role lookup failed for %s, failing closed: %s", session.user_id, exc)
            return NO_ACCESS

        if assignment is None:
            return NO_ACCESS
        return KnowledgeAccess(has_access=True, is_archonte=True, is_guardian_supreme=False)
