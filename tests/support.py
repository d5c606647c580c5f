"""Shared builders for tests: an in-memory store with the local identity provider."""

from __future__ import annotations

from lordre.bootstrap import Services, build_services
from lordre.config import LOrdreSettings
from lordre.domain.schema import AppRole, Grade, MemberStatus
from lordre.governance.policies import Actor
from lordre.store.database import Database

JWT_SECRET = "test-secret-key-for-lordre-tests-only"
PASSWORD = "motdepasse123"


def make_settings(**overrides) -> LOrdreSettings:
    values = {
        "database_url": "sqlite://",
        "identity_backend": "local",
        "jwt_secret_key": JWT_SECRET,
    }
    values.update(overrides)
    return LOrdreSettings(**values)


def make_services(seed_state: bool = True, **overrides) -> Services:
    config = make_settings(**overrides)
    database = Database("sqlite://")
    database.initialize()
    services = build_services(config, database=database)
    if seed_state:
        services.system_state.seed()
    return services


def create_member(
    services: Services,
    email: str,
    pseudonym: str,
    roles: tuple[AppRole, ...] = (AppRole.INITIATE,),
    grade: Grade = Grade.NOVICE,
    status: MemberStatus = MemberStatus.ACTIVE,
) -> str:
    identity = services.identity.create_user(email, PASSWORD)
    services.gateway.insert_profile(Actor.service(), identity.id, pseudonym, grade, status)
    for role in roles:
        services.gateway.insert_role(Actor.service(), identity.id, role)
    return identity.id


def bearer(services: Services, user_id: str) -> str:
    return f"Bearer {services.identity.tokens.issue(user_id)}"
