"""
Domain Schema — Pydantic models for the entities of L'Ordre.

These models are the canonical data structures exchanged between the store
gateway, the governance services and the API. ORM rows are converted into
them at the gateway boundary (``from_attributes``), so nothing outside
``lordre.store`` handles SQLAlchemy objects.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Grade(str, enum.Enum):
    """Initiate grades, in ascending order."""

    NOVICE = "novice"
    APPRENTI = "apprenti"
    COMPAGNON = "compagnon"
    MAITRE = "maitre"
    SAGE = "sage"
    ORACLE = "oracle"

    @property
    def rank(self) -> int:
        return GRADE_ORDER.index(self)

    @property
    def points(self) -> int:
        return GRADE_POINTS[self]

    def next(self) -> Grade | None:
        """The following grade, or None for ORACLE."""
        if self.rank + 1 >= len(GRADE_ORDER):
            return None
        return GRADE_ORDER[self.rank + 1]

    # str already defines every comparison, so all four are overridden
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Grade):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Grade):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Grade):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Grade):
            return NotImplemented
        return self.rank >= other.rank


class MemberStatus(str, enum.Enum):
    ACTIVE = "active"
    UNDER_SURVEILLANCE = "under_surveillance"
    PENDING = "pending"
    EXCLUSION_REQUESTED = "exclusion_requested"


class AppRole(str, enum.Enum):
    """Role tags held through role assignments."""

    INITIATE = "initiate"
    ARCHONTE = "archonte"
    GUARDIAN_SUPREME = "guardian_supreme"


class AlertState(str, enum.Enum):
    NORMAL = "normal"
    VIGILANCE = "vigilance"
    CRISE = "crise"

    @property
    def label(self) -> str:
        return ALERT_LABELS[self]


class ActionType(str, enum.Enum):
    """Closed set of action history entry types."""

    FILE_CREATED = "file_created"
    FILE_UPDATED = "file_updated"
    FILE_DELETED = "file_deleted"
    JUDGMENT_ISSUED = "judgment_issued"
    STATUS_CHANGED = "status_changed"
    VOTE_CAST = "vote_cast"
    REQUEST_SUBMITTED = "request_submitted"
    REQUEST_RESOLVED = "request_resolved"
    OPINION_CREATED = "opinion_created"
    EVENT_CREATED = "event_created"
    RULE_CREATED = "rule_created"
    ALERT_CHANGED = "alert_changed"

    @property
    def label(self) -> str:
        return ACTION_LABELS[self]


GRADE_ORDER: list[Grade] = list(Grade)

GRADE_POINTS: dict[Grade, int] = {
    Grade.NOVICE: 10,
    Grade.APPRENTI: 25,
    Grade.COMPAGNON: 50,
    Grade.MAITRE: 100,
    Grade.SAGE: 200,
    Grade.ORACLE: 500,
}

BADGE_POINTS = 5

ALERT_LABELS: dict[AlertState, str] = {
    AlertState.NORMAL: "Normal",
    AlertState.VIGILANCE: "Vigilance",
    AlertState.CRISE: "Crise",
}

ACTION_LABELS: dict[ActionType, str] = {
    ActionType.FILE_CREATED: "Fiche créée",
    ActionType.FILE_UPDATED: "Fiche modifiée",
    ActionType.FILE_DELETED: "Fiche supprimée",
    ActionType.JUDGMENT_ISSUED: "Jugement rendu",
    ActionType.STATUS_CHANGED: "Statut modifié",
    ActionType.VOTE_CAST: "Vote enregistré",
    ActionType.REQUEST_SUBMITTED: "Demande soumise",
    ActionType.REQUEST_RESOLVED: "Demande traitée",
    ActionType.OPINION_CREATED: "Avis créé",
    ActionType.EVENT_CREATED: "Événement créé",
    ActionType.RULE_CREATED: "Règle créée",
    ActionType.ALERT_CHANGED: "Alerte modifiée",
}

# Display name for history entries whose actor has no profile
SYSTEM_ACTOR_NAME = "Système"


# ════════════════════════════════════════════════════════════════
# Identity & Membership
# ════════════════════════════════════════════════════════════════


class Identity(BaseModel):
    """An account record owned by the identity provider."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str | None = None
    email_confirmed: bool = False
    created_at: datetime | None = None


class TokenClaims(BaseModel):
    """Verified claims extracted from a bearer token."""

    sub: str = Field(description="Subject — the authenticated user id")
    email: str | None = None
    role: str = "authenticated"
    exp: int | None = None


class AuthenticatedSession(BaseModel):
    """
    A verified session.

    The guardian-supreme capability is resolved once when the session is
    established and carried with it afterwards.
    """

    user_id: str
    email: str | None = None
    is_guardian_supreme: bool = False


class Profile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    pseudonym: str
    grade: Grade = Grade.NOVICE
    status: MemberStatus = MemberStatus.ACTIVE
    avatar_url: str | None = None
    joined_at: datetime | None = None

    @computed_field
    @property
    def grade_progress(self) -> float:
        """Percentage of the grade ladder reached."""
        return round((self.grade.rank + 1) / len(GRADE_ORDER) * 100, 1)


class RoleAssignment(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    role: AppRole
    created_at: datetime | None = None


class KnowledgeAccess(BaseModel):
    """Result of role resolution for the knowledge base."""

    has_access: bool = False
    is_archonte: bool = False
    is_guardian_supreme: bool = False


# ════════════════════════════════════════════════════════════════
# System State & Action History
# ════════════════════════════════════════════════════════════════


class SystemState(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = 1
    alert_state: AlertState = AlertState.NORMAL
    alert_message: str | None = None
    changed_by: str | None = None
    changed_at: datetime | None = None

    @computed_field
    @property
    def alert_label(self) -> str:
        return self.alert_state.label


class StateChangeOutcome(BaseModel):
    """Result of a system-state update."""

    previous: SystemState
    current: SystemState
    audit_recorded: bool = Field(
        description="False when the alert_changed history entry could not be appended"
    )
    audit_error: str | None = None


class ActionHistoryEntry(BaseModel):
    """A single immutable entry in the action history."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    sequence_number: int | None = None
    action_type: ActionType
    actor_id: str
    actor_name: str | None = Field(
        default=None, description="Resolved pseudonym of the actor, when known"
    )
    target_id: str | None = None
    target_type: str | None = None
    description: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @computed_field
    @property
    def action_label(self) -> str:
        return self.action_type.label


class HistoryFilter(BaseModel):
    action_type: ActionType | None = None
    search_text: str | None = None


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    pseudonym: str
    grade: Grade
    badge_count: int = 0
    score: int
    joined_at: datetime | None = None
