"""
Tests for the Row Policy Engine.

Validates:
- Capability derivation from roles
- Owner-restricted profile edits
- Append-only history and undeletable system state
- Service role bypass
"""

from __future__ import annotations

import pytest

from lordre.domain.schema import AppRole
from lordre.errors import AuthenticationError, AuthorizationError
from lordre.governance.policies import (
    Actor,
    Capability,
    Operation,
    PolicyDecision,
    PolicyEngine,
    StoreTable,
    policy_engine,
)


class TestActor:
    def test_anonymous_has_no_capabilities(self):
        assert Actor.anonymous().capabilities == frozenset()
        assert not Actor.anonymous().is_authenticated

    def test_any_user_is_authenticated(self):
        actor = Actor(user_id="u1")
        assert actor.has(Capability.AUTHENTICATED)
        assert not actor.has(Capability.ACCESS_KNOWLEDGE_BASE)

    def test_archonte_reaches_knowledge_base(self):
        actor = Actor(user_id="u1", roles=frozenset({AppRole.ARCHONTE}))
        assert actor.has(Capability.ACCESS_KNOWLEDGE_BASE)
        assert not actor.has(Capability.CHANGE_ALERT_STATE)

    def test_guardian_holds_every_capability(self):
        actor = Actor(user_id="g", roles=frozenset({AppRole.GUARDIAN_SUPREME}))
        assert actor.capabilities == frozenset(Capability)


class TestPolicyEngine:
    def setup_method(self):
        self.engine = PolicyEngine()
        self.guardian = Actor(user_id="g", roles=frozenset({AppRole.GUARDIAN_SUPREME}))
        self.initiate = Actor(user_id="i", roles=frozenset({AppRole.INITIATE}))

    def test_guardian_may_change_alert_state(self):
        result = self.engine.check(self.guardian, StoreTable.SYSTEM_STATE, Operation.UPDATE)
        assert result.decision == PolicyDecision.AUTHORIZED

    def test_initiate_may_not_change_alert_state(self):
        result = self.engine.check(self.initiate, StoreTable.SYSTEM_STATE, Operation.UPDATE)
        assert result.decision == PolicyDecision.FORBIDDEN
        assert "Gardien Suprême" in result.reason

    def test_anonymous_is_unauthenticated(self):
        result = self.engine.check(Actor.anonymous(), StoreTable.PROFILES, Operation.SELECT)
        assert result.decision == PolicyDecision.UNAUTHENTICATED

    def test_owner_may_edit_own_pseudonym(self):
        result = self.engine.check(
            self.initiate, StoreTable.PROFILES, Operation.UPDATE,
            row_owner_id="i", columns=["pseudonym"],
        )
        assert result.is_allowed

    def test_owner_may_not_edit_own_grade(self):
        result = self.engine.check(
            self.initiate, StoreTable.PROFILES, Operation.UPDATE,
            row_owner_id="i", columns=["grade"],
        )
        assert not result.is_allowed

    def test_non_owner_may_not_edit_profile(self):
        result = self.engine.check(
            self.initiate, StoreTable.PROFILES, Operation.UPDATE,
            row_owner_id="someone-else", columns=["pseudonym"],
        )
        assert not result.is_allowed

    def test_member_reads_own_roles_only(self):
        own = self.engine.check(self.initiate, StoreTable.USER_ROLES, Operation.SELECT, row_owner_id="i")
        other = self.engine.check(self.initiate, StoreTable.USER_ROLES, Operation.SELECT, row_owner_id="x")
        assert own.is_allowed
        assert not other.is_allowed

    def test_history_written_in_own_name_only(self):
        own = self.engine.check(
            self.initiate, StoreTable.ACTION_HISTORY, Operation.INSERT, row_owner_id="i",
        )
        forged = self.engine.check(
            self.guardian, StoreTable.ACTION_HISTORY, Operation.INSERT, row_owner_id="i",
        )
        assert own.is_allowed
        assert not forged.is_allowed

    def test_history_read_requires_knowledge_base(self):
        result = self.engine.check(self.initiate, StoreTable.ACTION_HISTORY, Operation.SELECT)
        assert not result.is_allowed

    @pytest.mark.parametrize("operation", [Operation.UPDATE, Operation.DELETE])
    def test_history_is_append_only_even_for_service(self, operation):
        for actor in (self.guardian, Actor.service()):
            result = self.engine.check(actor, StoreTable.ACTION_HISTORY, operation)
            assert result.decision == PolicyDecision.FORBIDDEN

    def test_system_state_cannot_be_deleted(self):
        result = self.engine.check(Actor.service(), StoreTable.SYSTEM_STATE, Operation.DELETE)
        assert not result.is_allowed

    def test_only_service_seeds_system_state(self):
        assert not self.engine.check(self.guardian, StoreTable.SYSTEM_STATE, Operation.INSERT).is_allowed
        assert self.engine.check(Actor.service(), StoreTable.SYSTEM_STATE, Operation.INSERT).is_allowed

    def test_service_bypasses_member_management(self):
        result = self.engine.check(Actor.service(), StoreTable.USER_ROLES, Operation.INSERT, row_owner_id="x")
        assert result.is_allowed

    def test_enforce_raises_by_decision(self):
        with pytest.raises(AuthenticationError):
            self.engine.enforce(Actor.anonymous(), StoreTable.PROFILES, Operation.SELECT)
        with pytest.raises(AuthorizationError):
            self.engine.enforce(self.initiate, StoreTable.USER_ROLES, Operation.INSERT, row_owner_id="x")

    def test_global_policy_engine_exists(self):
        assert policy_engine is not None
        assert policy_engine.get_policy(StoreTable.SYSTEM_STATE, Operation.UPDATE) is not None
