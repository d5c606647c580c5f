"""
Persistent Store — SQLAlchemy models for L'Ordre.

Tables:

- ``identities``      accounts of the local identity provider
- ``profiles``        member profiles, one per identity
- ``user_roles``      role assignments (zero or more per identity)
- ``system_state``    the single global alert record
- ``action_history``  append-only audit trail
- ``user_badges``     badges awarded to members (read by the leaderboard)

Deleting an identity cascades to its profile, role assignments and badges.
System state and action history reference users informationally only.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from lordre.errors import AppendOnlyViolationError


def _uuid() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


JSONType = JSON().with_variant(JSONB(), "postgresql")

SYSTEM_STATE_ID = 1


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all store models."""
    pass


class IdentityDB(Base):
    """Identity records for the local identity provider."""

    __tablename__ = "identities"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(320), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    email_confirmed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class ProfileDB(Base):
    __tablename__ = "profiles"

    id = Column(
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        primary_key=True,
        comment="Identity id owning this profile",
    )
    pseudonym = Column(String(100), nullable=False, unique=True)
    grade = Column(String(20), nullable=False, default="novice")
    status = Column(String(30), nullable=False, default="active")
    avatar_url = Column(Text, nullable=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    __table_args__ = (
        Index("ix_profile_status", "status"),
    )


class UserRoleDB(Base):
    __tablename__ = "user_roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        nullable=False,
    )
    role = Column(String(30), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_role"),
        Index("ix_user_roles_user", "user_id"),
    )


class SystemStateDB(Base):
    """
    The global alert record.

    Single-instance: the primary key is pinned to 1 by a check constraint, so
    the database itself rejects a second row.
    """

    __tablename__ = "system_state"

    id = Column(Integer, primary_key=True, default=SYSTEM_STATE_ID, autoincrement=False)
    alert_state = Column(String(20), nullable=False, default="normal")
    alert_message = Column(Text, nullable=True)
    changed_by = Column(String(36), nullable=True)
    changed_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint(f"id = {SYSTEM_STATE_ID}", name="ck_system_state_singleton"),
    )


class ActionHistoryDB(Base):
    """
    A single entry in the action history.

    This table is APPEND-ONLY. Updates and deletes are refused at flush time
    by the listeners below.
    """

    __tablename__ = "action_history"

    sequence_number = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False, unique=True, default=_uuid)
    action_type = Column(String(30), nullable=False)
    actor_id = Column(String(36), nullable=False)
    target_id = Column(String(36), nullable=True)
    target_type = Column(String(50), nullable=True)
    description = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    details = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_action_history_created", "created_at"),
        Index("ix_action_history_type_created", "action_type", "created_at"),
        Index("ix_action_history_actor", "actor_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActionHistory seq={self.sequence_number} "
            f"type={self.action_type} actor={self.actor_id[:8]}...>"
        )


class UserBadgeDB(Base):
    __tablename__ = "user_badges"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(
        String(36),
        ForeignKey("identities.id", ondelete="CASCADE"),
        nullable=False,
    )
    badge_id = Column(String(36), nullable=False)
    awarded_by = Column(String(36), nullable=True)
    awarded_at = Column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        Index("ix_user_badges_user", "user_id"),
    )


@event.listens_for(ActionHistoryDB, "before_update")
def _refuse_history_update(mapper, connection, target) -> None:
    raise AppendOnlyViolationError(
        f"action_history is append-only: refusing to update entry {target.id}"
    )


@event.listens_for(ActionHistoryDB, "before_delete")
def _refuse_history_delete(mapper, connection, target) -> None:
    raise AppendOnlyViolationError(
        f"action_history is append-only: refusing to delete entry {target.id}"
    )
