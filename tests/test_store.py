"""
Tests for the store gateway.

Validates:
- Policy checks before writes
- System state singleton at the database level
- Profile updates limited to known columns
- Identity deletion cascading to dependent rows
"""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from lordre.domain.schema import AlertState, AppRole, Grade
from lordre.errors import AuthorizationError, NotFoundError, ValidationError
from lordre.governance.policies import Actor
from lordre.store.models import SystemStateDB

from support import create_member, make_services


class TestProfiles:
    def setup_method(self):
        self.services = make_services()
        self.gateway = self.services.gateway
        self.member_id = create_member(self.services, "m@ordre.fr", "Selene")

    def test_member_cannot_insert_profile(self):
        with pytest.raises(AuthorizationError):
            self.gateway.insert_profile(Actor(user_id=self.member_id), "other", "Intrus")

    def test_owner_edits_own_pseudonym(self):
        actor = self.gateway.actor_for(self.member_id)
        profile = self.gateway.update_profile(actor, self.member_id, {"pseudonym": "Séléné"})
        assert profile.pseudonym == "Séléné"

    def test_owner_cannot_promote_self(self):
        actor = self.gateway.actor_for(self.member_id)
        with pytest.raises(AuthorizationError):
            self.gateway.update_profile(actor, self.member_id, {"grade": Grade.ORACLE})
        assert self.gateway.get_profile(self.member_id).grade == Grade.NOVICE

    def test_unknown_column_rejected(self):
        with pytest.raises(ValidationError):
            self.gateway.update_profile(Actor.service(), self.member_id, {"email": "x"})

    def test_empty_update_rejected(self):
        with pytest.raises(ValidationError):
            self.gateway.update_profile(Actor.service(), self.member_id, {})

    def test_missing_profile(self):
        with pytest.raises(NotFoundError):
            self.gateway.update_profile(Actor.service(), "missing", {"grade": Grade.SAGE})

    def test_pseudonyms_lookup(self):
        assert self.gateway.pseudonyms([self.member_id, "missing"]) == {self.member_id: "Selene"}


class TestSystemStateSingleton:
    def test_database_rejects_second_row(self):
        services = make_services()
        with pytest.raises(IntegrityError):
            with services.database.session() as session:
                session.add(SystemStateDB(id=2, alert_state=AlertState.CRISE.value))

    def test_update_requires_guardian_role(self):
        services = make_services()
        member_id = create_member(services, "m@ordre.fr", "Selene", roles=(AppRole.ARCHONTE,))
        with pytest.raises(AuthorizationError):
            services.gateway.update_system_state(
                services.gateway.actor_for(member_id), AlertState.CRISE, None,
            )


class TestCascade:
    def test_identity_deletion_removes_profile_and_roles(self):
        services = make_services()
        member_id = create_member(
            services, "m@ordre.fr", "Selene", roles=(AppRole.INITIATE, AppRole.ARCHONTE),
        )
        services.gateway.award_badge(Actor.service(), member_id, "badge-1")

        services.identity.delete_user(member_id)

        assert services.gateway.get_profile(member_id) is None
        assert services.gateway.roles_for(member_id) == frozenset()
        assert services.gateway.badge_counts() == {}
