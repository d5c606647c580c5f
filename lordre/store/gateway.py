"""
Store Gateway — policy-checked access to the persistent store.

The gateway is the only code that opens store sessions. Each mutating method
takes the acting ``Actor`` and consults the ``PolicyEngine`` before touching
the database, so row authorization holds no matter which service calls in.
ORM rows never leave this module: results are returned as domain models.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from lordre.domain.schema import (
    ActionHistoryEntry,
    ActionType,
    AlertState,
    AppRole,
    Grade,
    MemberStatus,
    Profile,
    RoleAssignment,
    SystemState,
)
from lordre.errors import NotFoundError, SingletonViolationError, StoreError, ValidationError
from lordre.governance.policies import (
    Actor,
    Operation,
    PolicyEngine,
    StoreTable,
    policy_engine,
)
from lordre.store.database import Database
from lordre.store.models import (
    SYSTEM_STATE_ID,
    ActionHistoryDB,
    ProfileDB,
    SystemStateDB,
    UserBadgeDB,
    UserRoleDB,
)

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = frozenset({"pseudonym", "grade", "status", "avatar_url"})


def _store_error(exc: SQLAlchemyError) -> StoreError:
    if isinstance(exc, IntegrityError) and exc.orig is not None:
        return StoreError(str(exc.orig))
    return StoreError(str(exc))


def _history_entry(row: ActionHistoryDB, actor_name: str | None = None) -> ActionHistoryEntry:
    return ActionHistoryEntry(
        id=row.id,
        sequence_number=row.sequence_number,
        action_type=ActionType(row.action_type),
        actor_id=row.actor_id,
        actor_name=actor_name,
        target_id=row.target_id,
        target_type=row.target_type,
        description=row.description,
        metadata=dict(row.details or {}),
        created_at=row.created_at,
    )


class StoreGateway:
    """Policy-enforcing facade over the store tables."""

    def __init__(self, database: Database, policies: PolicyEngine | None = None) -> None:
        self.database = database
        self.policies = policies or policy_engine

    # ── Actors & roles ─────────────────────────────────────────

    def roles_for(self, user_id: str) -> frozenset[AppRole]:
        """All roles held by ``user_id`` (privileged read)."""
        try:
            with self.database.session() as session:
                rows = session.execute(
                    select(UserRoleDB.role).where(UserRoleDB.user_id == user_id)
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        return frozenset(AppRole(r) for r in rows)

    def actor_for(self, user_id: str) -> Actor:
        """Build an actor carrying the roles currently stored for ``user_id``."""
        return Actor(user_id=user_id, roles=self.roles_for(user_id))

    def find_role(self, actor: Actor, user_id: str, role: AppRole) -> RoleAssignment | None:
        """Look up a single role assignment, subject to the read policy."""
        self.policies.enforce(actor, StoreTable.USER_ROLES, Operation.SELECT, row_owner_id=user_id)
        try:
            with self.database.session() as session:
                row = session.execute(
                    select(UserRoleDB)
                    .where(UserRoleDB.user_id == user_id, UserRoleDB.role == role.value)
                    .limit(1)
                ).scalar_one_or_none()
                return RoleAssignment.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    def insert_role(self, actor: Actor, user_id: str, role: AppRole) -> RoleAssignment:
        self.policies.enforce(actor, StoreTable.USER_ROLES, Operation.INSERT, row_owner_id=user_id)
        try:
            with self.database.session() as session:
                row = UserRoleDB(user_id=user_id, role=role.value)
                session.add(row)
                session.flush()
                assignment = RoleAssignment.model_validate(row)
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        logger.info("Role assigned: user=%s role=%s", user_id, role.value)
        return assignment

    # ── Profiles ───────────────────────────────────────────────

    def get_profile(self, user_id: str) -> Profile | None:
        try:
            with self.database.session() as session:
                row = session.get(ProfileDB, user_id)
                return Profile.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    def list_profiles(self, status: MemberStatus | None = None) -> list[Profile]:
        stmt = select(ProfileDB).order_by(ProfileDB.joined_at.desc())
        if status is not None:
            stmt = stmt.where(ProfileDB.status == status.value)
        try:
            with self.database.session() as session:
                return [Profile.model_validate(r) for r in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    def pseudonyms(self, user_ids: Iterable[str]) -> dict[str, str]:
        ids = set(user_ids)
        if not ids:
            return {}
        try:
            with self.database.session() as session:
                rows = session.execute(
                    select(ProfileDB.id, ProfileDB.pseudonym).where(ProfileDB.id.in_(ids))
                ).all()
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        return {row.id: row.pseudonym for row in rows}

    def insert_profile(
        self,
        actor: Actor,
        user_id: str,
        pseudonym: str,
        grade: Grade = Grade.NOVICE,
        status: MemberStatus = MemberStatus.ACTIVE,
    ) -> Profile:
        self.policies.enforce(actor, StoreTable.PROFILES, Operation.INSERT, row_owner_id=user_id)
        try:
            with self.database.session() as session:
                row = ProfileDB(
                    id=user_id,
                    pseudonym=pseudonym,
                    grade=grade.value,
                    status=status.value,
                )
                session.add(row)
                session.flush()
                profile = Profile.model_validate(row)
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        logger.info("Profile created: user=%s pseudonym=%s", user_id, pseudonym)
        return profile

    def update_profile(self, actor: Actor, user_id: str, fields: dict[str, Any]) -> Profile:
        """
        Overwrite the given profile columns and nothing else.

        Raises:
            ValidationError: unknown column or empty update.
            NotFoundError: no profile for ``user_id``.
        """
        unknown = set(fields) - PROFILE_COLUMNS
        if unknown:
            raise ValidationError(f"Champs de profil inconnus: {', '.join(sorted(unknown))}")
        if not fields:
            raise ValidationError("Aucun champ de profil à mettre à jour")

        self.policies.enforce(
            actor, StoreTable.PROFILES, Operation.UPDATE,
            row_owner_id=user_id, columns=fields.keys(),
        )
        values = {k: (v.value if hasattr(v, "value") else v) for k, v in fields.items()}
        try:
            with self.database.session() as session:
                row = session.get(ProfileDB, user_id)
                if row is None:
                    raise NotFoundError(f"Profil introuvable: {user_id}")
                for column, value in values.items():
                    setattr(row, column, value)
                session.flush()
                profile = Profile.model_validate(row)
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        logger.info("Profile updated: user=%s fields=%s", user_id, sorted(values))
        return profile

    # ── System state ───────────────────────────────────────────

    def get_system_state(self) -> SystemState | None:
        try:
            with self.database.session() as session:
                row = session.execute(
                    select(SystemStateDB).order_by(SystemStateDB.changed_at.desc()).limit(1)
                ).scalar_one_or_none()
                return SystemState.model_validate(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    def insert_system_state(
        self,
        actor: Actor,
        alert_state: AlertState = AlertState.NORMAL,
        alert_message: str | None = None,
    ) -> SystemState:
        """Seed the singleton. A second insert is always refused."""
        self.policies.enforce(actor, StoreTable.SYSTEM_STATE, Operation.INSERT)
        try:
            with self.database.session() as session:
                count = session.execute(
                    select(func.count()).select_from(SystemStateDB)
                ).scalar() or 0
                if count:
                    raise SingletonViolationError(
                        "system_state already holds its single record; only updates are permitted"
                    )
                row = SystemStateDB(
                    id=SYSTEM_STATE_ID,
                    alert_state=alert_state.value,
                    alert_message=alert_message,
                    changed_by=actor.user_id,
                    changed_at=datetime.now(timezone.utc),
                )
                session.add(row)
                session.flush()
                state = SystemState.model_validate(row)
        except IntegrityError as exc:
            raise SingletonViolationError(
                "system_state already holds its single record; only updates are permitted"
            ) from exc
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        logger.info("System state seeded: alert_state=%s", alert_state.value)
        return state

    def update_system_state(
        self,
        actor: Actor,
        alert_state: AlertState,
        alert_message: str | None,
    ) -> SystemState:
        """Replace the singleton's fields; ``changed_by`` is the actor."""
        self.policies.enforce(actor, StoreTable.SYSTEM_STATE, Operation.UPDATE)
        try:
            with self.database.session() as session:
                row = session.get(SystemStateDB, SYSTEM_STATE_ID)
                if row is None:
                    raise NotFoundError("État système absent: la base n'a pas été initialisée")
                row.alert_state = alert_state.value
                row.alert_message = alert_message
                row.changed_by = actor.user_id
                row.changed_at = datetime.now(timezone.utc)
                session.flush()
                state = SystemState.model_validate(row)
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        return state

    # ── Action history ─────────────────────────────────────────

    def append_history(
        self,
        actor: Actor,
        action_type: ActionType,
        description: str,
        target_id: str | None = None,
        target_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActionHistoryEntry:
        self.policies.enforce(
            actor, StoreTable.ACTION_HISTORY, Operation.INSERT, row_owner_id=actor.user_id,
        )
        try:
            with self.database.session() as session:
                row = ActionHistoryDB(
                    action_type=action_type.value,
                    actor_id=actor.user_id,
                    target_id=target_id,
                    target_type=target_type,
                    description=description,
                    details=dict(metadata or {}),
                    created_at=datetime.now(timezone.utc),
                )
                session.add(row)
                session.flush()
                entry = _history_entry(row)
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        return entry

    def recent_history(
        self,
        actor: Actor,
        limit: int,
        action_type: ActionType | None = None,
    ) -> list[ActionHistoryEntry]:
        """Most recent entries first, at most ``limit`` of them."""
        self.policies.enforce(actor, StoreTable.ACTION_HISTORY, Operation.SELECT)
        stmt = (
            select(ActionHistoryDB)
            .order_by(ActionHistoryDB.created_at.desc(), ActionHistoryDB.sequence_number.desc())
            .limit(limit)
        )
        if action_type is not None:
            stmt = stmt.where(ActionHistoryDB.action_type == action_type.value)
        try:
            with self.database.session() as session:
                return [_history_entry(r) for r in session.execute(stmt).scalars().all()]
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    def history_count(self) -> int:
        try:
            with self.database.session() as session:
                return session.execute(
                    select(func.count()).select_from(ActionHistoryDB)
                ).scalar() or 0
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc

    # ── Badges ─────────────────────────────────────────────────

    def badge_counts(self) -> dict[str, int]:
        try:
            with self.database.session() as session:
                rows = session.execute(
                    select(UserBadgeDB.user_id, func.count(UserBadgeDB.id))
                    .group_by(UserBadgeDB.user_id)
                ).all()
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
        return {user_id: count for user_id, count in rows}

    def award_badge(self, actor: Actor, user_id: str, badge_id: str) -> None:
        self.policies.enforce(actor, StoreTable.USER_BADGES, Operation.INSERT, row_owner_id=user_id)
        try:
            with self.database.session() as session:
                session.add(UserBadgeDB(user_id=user_id, badge_id=badge_id, awarded_by=actor.user_id))
        except SQLAlchemyError as exc:
            raise _store_error(exc) from exc
