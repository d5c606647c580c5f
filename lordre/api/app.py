"""
L'Ordre — HTTP API.

FastAPI application providing:
- Administrative command endpoint (Guardian Supreme only)
- System state read / update
- Own profile with grade progression
- Knowledge-base access resolution
- Action history read / append
- Leaderboard
- Password sign-in and health check

Domain errors are translated to ``{"error": message}`` with the status their
class carries. Anything else is a 500 with a generic message.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from lordre.config import settings
from lordre.domain.schema import ActionType, AlertState, AuthenticatedSession, HistoryFilter
from lordre.errors import LOrdreError, NotFoundError, ValidationError
from lordre.identity.tokens import extract_bearer

logger = logging.getLogger(__name__)

INTERNAL_ERROR = "Erreur serveur interne"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": settings.cors_allow_origin,
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


# ── Pydantic request models ────────────────────────────────────


class SystemStateUpdateRequest(BaseModel):
    alert_state: AlertState
    alert_message: str | None = None


class HistoryEntryRequest(BaseModel):
    action_type: ActionType
    description: str = Field(min_length=1)
    target_id: str | None = None
    target_type: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SignInRequest(BaseModel):
    email: str
    password: str


class AppState:
    """Mutable application state injected at startup."""

    def __init__(self) -> None:
        self.services: Any = None
        self.owns_services: bool = False
        self.startup_time: datetime = datetime.now(timezone.utc)

    def install(self, services: Any) -> None:
        self.services = services
        self.owns_services = False


state = AppState()


# ── Application lifecycle ──────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build services from settings unless they were installed beforehand."""
    if state.services is None:
        from lordre.bootstrap import build_services

        services = build_services()
        if settings.identity_backend == "local":
            services.database.initialize()
        services.system_state.ensure_seeded()
        state.services = services
        state.owns_services = True
        logger.info("API services ready (identity backend: %s)", settings.identity_backend)

    state.startup_time = datetime.now(timezone.utc)
    yield

    if state.owns_services:
        state.services.close()
        state.services = None
    logger.info("L'Ordre API shut down")


app = FastAPI(
    title="L'Ordre",
    description="Membership, alert state and action history for L'Ordre",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(LOrdreError)
async def domain_error_handler(request: Request, exc: LOrdreError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return JSONResponse({"error": INTERNAL_ERROR}, status_code=500)


# ── Dependencies ───────────────────────────────────────────────


def current_session(authorization: str | None = Header(default=None)) -> AuthenticatedSession:
    return state.services.sessions.establish(extract_bearer(authorization))


def optional_session(
    authorization: str | None = Header(default=None),
) -> AuthenticatedSession | None:
    if not authorization:
        return None
    return current_session(authorization)


# ── Routes: Administrative commands ────────────────────────────


@app.options("/functions/v1/admin-actions")
async def admin_actions_preflight():
    return Response(status_code=200, headers=CORS_HEADERS)


@app.post("/functions/v1/admin-actions")
async def admin_actions(request: Request):
    """Create, update or delete a member (Guardian Supreme only)."""
    try:
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Corps de requête invalide") from exc
        if not isinstance(body, dict):
            raise ValidationError("Corps de requête invalide")

        result = await run_in_threadpool(
            state.services.admin.handle, request.headers.get("authorization"), body,
        )
        return JSONResponse(result, headers=CORS_HEADERS)
    except LOrdreError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code, headers=CORS_HEADERS)
    except Exception:
        logger.exception("Admin action failed")
        return JSONResponse({"error": INTERNAL_ERROR}, status_code=500, headers=CORS_HEADERS)


# ── Routes: System state ───────────────────────────────────────


@app.get("/api/system-state")
def api_system_state(session: AuthenticatedSession = Depends(current_session)):
    return state.services.system_state.read().model_dump(mode="json")


@app.put("/api/system-state")
def api_system_state_update(
    req: SystemStateUpdateRequest,
    session: AuthenticatedSession = Depends(current_session),
):
    """Change the alert level (Guardian Supreme only)."""
    outcome = state.services.system_state.update(session, req.alert_state, req.alert_message)
    return outcome.model_dump(mode="json")


# ── Routes: Profile ────────────────────────────────────────────


@app.get("/api/profile")
def api_profile(session: AuthenticatedSession = Depends(current_session)):
    """The caller's own profile with grade progression."""
    profile = state.services.gateway.get_profile(session.user_id)
    if profile is None:
        raise NotFoundError("Profil introuvable")
    next_grade = profile.grade.next()
    return {
        **profile.model_dump(mode="json"),
        "next_grade": next_grade.value if next_grade else None,
    }


# ── Routes: Knowledge base & history ───────────────────────────


@app.get("/api/knowledge-access")
def api_knowledge_access(session: AuthenticatedSession | None = Depends(optional_session)):
    return state.services.roles.resolve(session).model_dump()


@app.get("/api/action-history")
def api_action_history(
    action_type: ActionType | None = Query(default=None, alias="type"),
    q: str | None = None,
    limit: int | None = Query(default=None, ge=1),
    session: AuthenticatedSession = Depends(current_session),
):
    actor = state.services.sessions.actor(session)
    entries = state.services.history.query(
        actor, HistoryFilter(action_type=action_type, search_text=q), limit=limit,
    )
    return {
        "entries": [e.model_dump(mode="json") for e in entries],
        "count": len(entries),
    }


@app.post("/api/action-history", status_code=201)
def api_action_history_append(
    req: HistoryEntryRequest,
    session: AuthenticatedSession = Depends(current_session),
):
    entry = state.services.history.log(
        state.services.sessions.actor(session),
        req.action_type,
        description=req.description,
        target_id=req.target_id,
        target_type=req.target_type,
        metadata=req.metadata,
    )
    return entry.model_dump(mode="json")


# ── Routes: Community ──────────────────────────────────────────


@app.get("/api/leaderboard")
def api_leaderboard(
    limit: int | None = Query(default=None, ge=1),
    session: AuthenticatedSession = Depends(current_session),
):
    return {
        "entries": [e.model_dump(mode="json") for e in state.services.leaderboard.ranking(limit)],
    }


# ── Routes: Sign-in & health ───────────────────────────────────


@app.post("/api/auth/sign-in")
def api_sign_in(req: SignInRequest):
    token = state.services.identity.sign_in(req.email, req.password)
    return {"access_token": token, "token_type": "bearer"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": (datetime.now(timezone.utc) - state.startup_time).total_seconds(),
        "identity_backend": settings.identity_backend,
        "refresh_interval_seconds": settings.refresh_interval_seconds,
        "services_available": state.services is not None,
    })
