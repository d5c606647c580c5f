"""
Tests for the Domain Schema — verifies the Pydantic models.

Validates:
- Enum completeness
- Grade ordering and points
- Labels and computed fields
"""

from __future__ import annotations

import pytest

from lordre.domain.schema import (
    ACTION_LABELS,
    ActionHistoryEntry,
    ActionType,
    AlertState,
    AppRole,
    Grade,
    MemberStatus,
    Profile,
    SystemState,
)


class TestEnums:
    """Verify enums are properly defined."""

    def test_grade_values(self):
        assert [g.value for g in Grade] == [
            "novice", "apprenti", "compagnon", "maitre", "sage", "oracle",
        ]

    def test_member_status_values(self):
        assert {s.value for s in MemberStatus} == {
            "active", "under_surveillance", "pending", "exclusion_requested",
        }

    def test_app_role_values(self):
        assert {r.value for r in AppRole} == {"initiate", "archonte", "guardian_supreme"}

    def test_alert_states(self):
        assert [a.label for a in AlertState] == ["Normal", "Vigilance", "Crise"]

    def test_every_action_type_has_label(self):
        assert len(ActionType) == 12
        assert set(ACTION_LABELS) == set(ActionType)


class TestGrade:
    def test_ordering(self):
        assert Grade.NOVICE < Grade.APPRENTI < Grade.ORACLE
        assert sorted([Grade.SAGE, Grade.NOVICE, Grade.MAITRE]) == [
            Grade.NOVICE, Grade.MAITRE, Grade.SAGE,
        ]

    def test_all_comparisons_follow_rank(self):
        # Alphabetically "apprenti" < "novice" and "sage" > "oracle"
        assert Grade.APPRENTI > Grade.NOVICE
        assert Grade.NOVICE <= Grade.APPRENTI
        assert Grade.NOVICE <= Grade.NOVICE
        assert Grade.ORACLE >= Grade.SAGE
        assert Grade.ORACLE >= Grade.ORACLE
        assert not Grade.SAGE > Grade.ORACLE
        assert not Grade.NOVICE >= Grade.APPRENTI
        assert max([Grade.SAGE, Grade.ORACLE, Grade.APPRENTI]) == Grade.ORACLE

    def test_comparison_with_other_types_unsupported(self):
        with pytest.raises(TypeError):
            Grade.NOVICE < 3

    def test_points(self):
        assert Grade.NOVICE.points == 10
        assert Grade.ORACLE.points == 500

    def test_next_stops_at_oracle(self):
        assert Grade.NOVICE.next() == Grade.APPRENTI
        assert Grade.SAGE.next() == Grade.ORACLE
        assert Grade.ORACLE.next() is None


class TestModels:
    def test_profile_defaults(self):
        profile = Profile(id="u1", pseudonym="Luna")
        assert profile.grade == Grade.NOVICE
        assert profile.status == MemberStatus.ACTIVE
        assert profile.grade_progress == pytest.approx(16.7)

    def test_system_state_label(self):
        state = SystemState(alert_state=AlertState.CRISE)
        assert state.alert_label == "Crise"
        assert state.model_dump()["alert_label"] == "Crise"

    def test_history_entry_label(self):
        entry = ActionHistoryEntry(
            id="e1",
            action_type=ActionType.ALERT_CHANGED,
            actor_id="u1",
            description="État d'alerte changé: Normal → Crise",
        )
        assert entry.action_label == "Alerte modifiée"
        assert entry.metadata == {}

    def test_unknown_action_type_rejected(self):
        with pytest.raises(ValueError):
            ActionType("file_burned")
