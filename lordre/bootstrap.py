"""
L'Ordre — process entrypoint.

Wires the store, identity provider and services from ``settings`` and exposes
the operator commands:

    lordre serve            run the HTTP API under uvicorn
    lordre init-db          create tables and seed the system state
    lordre seed-guardian    create the first Guardian Supreme account
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass

import structlog

from lordre.admin.service import AdminActionService
from lordre.community.leaderboard import Leaderboard
from lordre.config import LOrdreSettings, settings
from lordre.domain.schema import AppRole, Grade, MemberStatus
from lordre.errors import LOrdreError
from lordre.governance.policies import Actor
from lordre.governance.roles import RoleResolver
from lordre.governance.saga import Saga
from lordre.governance.system_state import SystemStateManager
from lordre.history.logger import ActionHistoryLogger
from lordre.identity.provider import IdentityProvider, LocalIdentityProvider
from lordre.identity.sessions import SessionResolver
from lordre.identity.tokens import TokenVerifier
from lordre.store.database import Database
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)


def configure_logging(config: LOrdreSettings = settings) -> None:
    """Configure structured logging."""
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            (
                structlog.dev.ConsoleRenderer()
                if config.log_format != "json"
                else structlog.processors.JSONRenderer()
            ),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.log_level)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@dataclass
class Services:
    """Everything the API and the CLI need, built once per process."""

    database: Database
    gateway: StoreGateway
    identity: IdentityProvider
    sessions: SessionResolver
    roles: RoleResolver
    history: ActionHistoryLogger
    system_state: SystemStateManager
    admin: AdminActionService
    leaderboard: Leaderboard

    def close(self) -> None:
        close = getattr(self.identity, "close", None)
        if close is not None:
            close()
        self.database.dispose()


def build_identity_provider(
    config: LOrdreSettings, database: Database, tokens: TokenVerifier,
) -> IdentityProvider:
    if config.identity_backend == "gotrue":
        from lordre.integrations.gotrue_client import GoTrueIdentityProvider

        return GoTrueIdentityProvider(
            base_url=config.supabase_url,
            service_role_key=config.supabase_service_role_key,
            anon_key=config.supabase_anon_key,
            tokens=tokens,
            timeout=config.identity_timeout_seconds,
        )
    if config.identity_backend != "local":
        raise ValueError(f"Unknown identity backend: {config.identity_backend}")
    return LocalIdentityProvider(database, tokens)


def build_services(
    config: LOrdreSettings = settings,
    database: Database | None = None,
) -> Services:
    database = database or Database(config.database_url_sync)
    gateway = StoreGateway(database)
    tokens = TokenVerifier(
        secret_key=config.jwt_secret_key,
        algorithm=config.jwt_algorithm,
        audience=config.jwt_audience,
        expiration_minutes=config.jwt_expiration_minutes,
    )
    identity = build_identity_provider(config, database, tokens)
    history = ActionHistoryLogger(gateway, page_limit=config.history_page_limit)

    return Services(
        database=database,
        gateway=gateway,
        identity=identity,
        sessions=SessionResolver(identity, gateway),
        roles=RoleResolver(gateway),
        history=history,
        system_state=SystemStateManager(gateway, history),
        admin=AdminActionService(identity, gateway, history),
        leaderboard=Leaderboard(gateway),
    )


def seed_guardian(services: Services, email: str, password: str, pseudonym: str) -> str:
    """Create an account holding the guardian_supreme role. Returns its id."""
    service = Actor.service()
    outcome = (
        Saga("seed_guardian")
        .step(
            "identity",
            lambda r: services.identity.create_user(email, password, email_confirm=True),
            compensate=lambda r: services.identity.delete_user(r["identity"].id),
        )
        .step(
            "profile",
            lambda r: services.gateway.insert_profile(
                service, r["identity"].id, pseudonym, Grade.ORACLE, MemberStatus.ACTIVE,
            ),
        )
        .step(
            "role",
            lambda r: services.gateway.insert_role(
                service, r["identity"].id, AppRole.GUARDIAN_SUPREME,
            ),
        )
        .execute()
    )
    return outcome.results["identity"].id


# ── Commands ───────────────────────────────────────────────────


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    log = structlog.get_logger()
    log.info(
        "lordre.bootstrap.serving",
        host=args.host,
        port=args.port,
        identity_backend=settings.identity_backend,
    )
    uvicorn.run(
        "lordre.api.app:app",
        host=args.host,
        port=args.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def _init_db(args: argparse.Namespace) -> int:
    log = structlog.get_logger()
    services = build_services()
    try:
        services.database.initialize()
        log.info("lordre.bootstrap.schema_ready")
        state = services.system_state.ensure_seeded()
        log.info("lordre.bootstrap.system_state_ready", alert_state=state.alert_state.value)
    finally:
        services.close()
    return 0


def _seed_guardian(args: argparse.Namespace) -> int:
    log = structlog.get_logger()
    services = build_services()
    try:
        user_id = seed_guardian(services, args.email, args.password, args.pseudonym)
    except LOrdreError as exc:
        log.error("lordre.bootstrap.seed_guardian_failed", error=exc.message)
        return 1
    finally:
        services.close()
    log.info("lordre.bootstrap.guardian_created", user_id=user_id, pseudonym=args.pseudonym)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="lordre", description="L'Ordre membership service")
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=settings.api_host)
    serve.add_argument("--port", type=int, default=settings.api_port)
    serve.set_defaults(handler=_serve)

    init_db = commands.add_parser("init-db", help="Create tables and seed the system state")
    init_db.set_defaults(handler=_init_db)

    guardian = commands.add_parser("seed-guardian", help="Create the first Guardian Supreme")
    guardian.add_argument("--email", required=True)
    guardian.add_argument("--password", required=True)
    guardian.add_argument("--pseudonym", required=True)
    guardian.set_defaults(handler=_seed_guardian)

    args = parser.parse_args(argv)
    configure_logging()
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
