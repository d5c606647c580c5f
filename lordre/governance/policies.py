"""
Row Policy Enforcement — authorization rules of the persistent store.

Every mutation the store gateway performs passes through this engine first.
A policy is keyed by (table, operation) and names:

- the capability an actor must hold,
- whether owning the row is enough on its own (``allow_owner``),
- whether owning the row is required in addition (``require_owner``),
- whether the privileged service role bypasses it (``service_bypass``).

Capabilities are derived from role assignments through ``ROLE_CAPABILITIES``.
The check is pure: it never touches the store, so it can be exercised directly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from lordre.domain.schema import AppRole
from lordre.errors import AuthenticationError, AuthorizationError

logger = logging.getLogger(__name__)


class StoreTable(str, Enum):
    PROFILES = "profiles"
    USER_ROLES = "user_roles"
    SYSTEM_STATE = "system_state"
    ACTION_HISTORY = "action_history"
    USER_BADGES = "user_badges"


class Operation(str, Enum):
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class Capability(str, Enum):
    AUTHENTICATED = "authenticated"
    ACCESS_KNOWLEDGE_BASE = "access_knowledge_base"
    CHANGE_ALERT_STATE = "change_alert_state"
    MANAGE_MEMBERS = "manage_members"


ROLE_CAPABILITIES: dict[AppRole, frozenset[Capability]] = {
    AppRole.INITIATE: frozenset({Capability.AUTHENTICATED}),
    AppRole.ARCHONTE: frozenset({
        Capability.AUTHENTICATED,
        Capability.ACCESS_KNOWLEDGE_BASE,
    }),
    AppRole.GUARDIAN_SUPREME: frozenset(Capability),
}

ROLE_TITLES: dict[AppRole, str] = {
    AppRole.INITIATE: "Initié",
    AppRole.ARCHONTE: "Archonte",
    AppRole.GUARDIAN_SUPREME: "Gardien Suprême",
}


@dataclass(frozen=True)
class Actor:
    """
    The identity a store call is made on behalf of.

    ``service_role`` marks the privileged administrative client, which is only
    used after the caller has been authorized by the admin service.
    """

    user_id: str | None
    roles: frozenset[AppRole] = field(default_factory=frozenset)
    service_role: bool = False

    @classmethod
    def anonymous(cls) -> Actor:
        return cls(user_id=None)

    @classmethod
    def service(cls) -> Actor:
        return cls(user_id=None, service_role=True)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None or self.service_role

    @property
    def capabilities(self) -> frozenset[Capability]:
        if self.user_id is None:
            return frozenset()
        caps: set[Capability] = {Capability.AUTHENTICATED}
        for role in self.roles:
            caps |= ROLE_CAPABILITIES.get(role, frozenset())
        return frozenset(caps)

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities


@dataclass(frozen=True)
class TablePolicy:
    table: StoreTable
    operation: Operation
    capability: Capability | None
    allow_owner: bool = False
    require_owner: bool = False
    owner_columns: frozenset[str] | None = None
    service_bypass: bool = True
    description: str = ""


class PolicyDecision(str, Enum):
    AUTHORIZED = "authorized"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"


@dataclass
class PolicyCheckResult:
    decision: PolicyDecision
    table: StoreTable
    operation: Operation
    reason: str
    required: Capability | None = None

    @property
    def is_allowed(self) -> bool:
        return self.decision == PolicyDecision.AUTHORIZED


def _policy(table, operation, capability, **kwargs) -> tuple[tuple[StoreTable, Operation], TablePolicy]:
    return (table, operation), TablePolicy(table, operation, capability, **kwargs)


DEFAULT_POLICIES: dict[tuple[StoreTable, Operation], TablePolicy] = dict([
    # Profiles
    _policy(StoreTable.PROFILES, Operation.SELECT, Capability.AUTHENTICATED,
            description="Members can see each other's profiles"),
    _policy(StoreTable.PROFILES, Operation.INSERT, Capability.MANAGE_MEMBERS),
    _policy(StoreTable.PROFILES, Operation.UPDATE, Capability.MANAGE_MEMBERS,
            allow_owner=True, owner_columns=frozenset({"pseudonym", "avatar_url"}),
            description="Members may edit their own pseudonym and avatar"),
    _policy(StoreTable.PROFILES, Operation.DELETE, Capability.MANAGE_MEMBERS),
    # Role assignments
    _policy(StoreTable.USER_ROLES, Operation.SELECT, Capability.MANAGE_MEMBERS,
            allow_owner=True, description="Members may read their own roles"),
    _policy(StoreTable.USER_ROLES, Operation.INSERT, Capability.MANAGE_MEMBERS),
    _policy(StoreTable.USER_ROLES, Operation.UPDATE, Capability.MANAGE_MEMBERS),
    _policy(StoreTable.USER_ROLES, Operation.DELETE, Capability.MANAGE_MEMBERS),
    # System state: seeded by the service role only, never deleted
    _policy(StoreTable.SYSTEM_STATE, Operation.SELECT, Capability.AUTHENTICATED),
    _policy(StoreTable.SYSTEM_STATE, Operation.INSERT, None),
    _policy(StoreTable.SYSTEM_STATE, Operation.UPDATE, Capability.CHANGE_ALERT_STATE),
    _policy(StoreTable.SYSTEM_STATE, Operation.DELETE, None, service_bypass=False),
    # Action history: append-only, actors write entries in their own name
    _policy(StoreTable.ACTION_HISTORY, Operation.SELECT, Capability.ACCESS_KNOWLEDGE_BASE),
    _policy(StoreTable.ACTION_HISTORY, Operation.INSERT, Capability.AUTHENTICATED,
            require_owner=True),
    _policy(StoreTable.ACTION_HISTORY, Operation.UPDATE, None, service_bypass=False),
    _policy(StoreTable.ACTION_HISTORY, Operation.DELETE, None, service_bypass=False),
    # Badges
    _policy(StoreTable.USER_BADGES, Operation.SELECT, Capability.AUTHENTICATED),
    _policy(StoreTable.USER_BADGES, Operation.INSERT, Capability.MANAGE_MEMBERS),
    _policy(StoreTable.USER_BADGES, Operation.DELETE, Capability.MANAGE_MEMBERS),
])


def _roles_granting(capability: Capability) -> list[AppRole]:
    return [role for role, caps in ROLE_CAPABILITIES.items() if capability in caps]


class PolicyEngine:
    """
    Central row-policy evaluation.

    No mutation to profiles, role assignments or system state succeeds unless
    the acting identity's resolved roles satisfy the policy's capability.
    """

    def __init__(
        self,
        policies: dict[tuple[StoreTable, Operation], TablePolicy] | None = None,
    ) -> None:
        self.policies = policies or dict(DEFAULT_POLICIES)

    def get_policy(self, table: StoreTable, operation: Operation) -> TablePolicy | None:
        return self.policies.get((table, operation))

    def check(
        self,
        actor: Actor,
        table: StoreTable,
        operation: Operation,
        row_owner_id: str | None = None,
        columns: Iterable[str] | None = None,
    ) -> PolicyCheckResult:
        """
        Evaluate whether ``actor`` may perform ``operation`` on ``table``.

        Args:
            actor: The acting identity.
            table: Target table.
            operation: Requested operation.
            row_owner_id: User id owning the affected row, when meaningful.
            columns: Columns being written, for owner column restrictions.
        """
        policy = self.policies.get((table, operation))
        if policy is None:
            return PolicyCheckResult(
                decision=PolicyDecision.FORBIDDEN,
                table=table,
                operation=operation,
                reason=f"Aucune règle n'autorise {operation.value} sur {table.value}.",
            )

        if actor.service_role and policy.service_bypass:
            return PolicyCheckResult(
                decision=PolicyDecision.AUTHORIZED,
                table=table,
                operation=operation,
                reason="Service role",
            )

        if not actor.is_authenticated or actor.user_id is None:
            return PolicyCheckResult(
                decision=PolicyDecision.UNAUTHENTICATED,
                table=table,
                operation=operation,
                reason="Authentification requise.",
                required=policy.capability,
            )

        if policy.capability is None:
            return PolicyCheckResult(
                decision=PolicyDecision.FORBIDDEN,
                table=table,
                operation=operation,
                reason=f"L'opération {operation.value} est interdite sur {table.value}.",
            )

        is_owner = row_owner_id is not None and row_owner_id == actor.user_id

        if policy.require_owner and not is_owner:
            return PolicyCheckResult(
                decision=PolicyDecision.FORBIDDEN,
                table=table,
                operation=operation,
                reason=f"{table.value}: une entrée ne peut être écrite qu'en son propre nom.",
                required=policy.capability,
            )

        if actor.has(policy.capability):
            return PolicyCheckResult(
                decision=PolicyDecision.AUTHORIZED,
                table=table,
                operation=operation,
                reason=f"Capability {policy.capability.value}",
                required=policy.capability,
            )

        if policy.allow_owner and is_owner:
            written = set(columns or ())
            if policy.owner_columns is None or written <= policy.owner_columns:
                return PolicyCheckResult(
                    decision=PolicyDecision.AUTHORIZED,
                    table=table,
                    operation=operation,
                    reason="Row owner",
                    required=policy.capability,
                )

        titles = ", ".join(ROLE_TITLES[r] for r in _roles_granting(policy.capability))
        return PolicyCheckResult(
            decision=PolicyDecision.FORBIDDEN,
            table=table,
            operation=operation,
            reason=(
                f"Accès refusé. {operation.value} sur {table.value} requiert "
                f"le rôle {titles}."
            ),
            required=policy.capability,
        )

    def enforce(
        self,
        actor: Actor,
        table: StoreTable,
        operation: Operation,
        row_owner_id: str | None = None,
        columns: Iterable[str] | None = None,
    ) -> PolicyCheckResult:
        """Like ``check`` but raises on anything other than AUTHORIZED."""
        result = self.check(actor, table, operation, row_owner_id, columns)
        if result.decision == PolicyDecision.UNAUTHENTICATED:
            raise AuthenticationError(result.reason)
        if not result.is_allowed:
            logger.warning(
                "Policy denied: actor=%s table=%s op=%s reason=%s",
                actor.user_id, table.value, operation.value, result.reason,
            )
            raise AuthorizationError(result.reason)
        return result


# Global policy engine instance
policy_engine = PolicyEngine()
