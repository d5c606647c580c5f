"""
System State Manager — the single global alert record.

The alert level (normal, vigilance, crise) and its optional message gate
visible behavior application-wide. Only a guardian supreme may change it; the
caller's session is checked here and the store re-validates against the
actor's stored roles.

Every successful change is mirrored into the action history as an
``alert_changed`` entry. If that append fails the change stays committed and
the outcome reports the missing audit entry.
"""

from __future__ import annotations

import logging

from lordre.domain.schema import (
    ActionType,
    AlertState,
    AuthenticatedSession,
    StateChangeOutcome,
    SystemState,
)
from lordre.errors import AuthorizationError, LOrdreError, NotFoundError, SingletonViolationError
from lordre.governance.policies import Actor
from lordre.history.logger import ActionHistoryLogger
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)

GUARDIAN_REQUIRED = "Accès refusé. Seul le Gardien Suprême peut modifier l'état d'alerte."


class SystemStateManager:
    def __init__(self, gateway: StoreGateway, history: ActionHistoryLogger) -> None:
        self.gateway = gateway
        self.history = history

    def read(self) -> SystemState:
        """
        Raises:
            NotFoundError: the singleton was never seeded.
        """
        state = self.gateway.get_system_state()
        if state is None:
            raise NotFoundError("État système absent: la base n'a pas été initialisée")
        return state

    def seed(self, alert_state: AlertState = AlertState.NORMAL) -> SystemState:
        """Insert the singleton. Raises SingletonViolationError if it exists."""
        return self.gateway.insert_system_state(Actor.service(), alert_state=alert_state)

    def ensure_seeded(self) -> SystemState:
        try:
            return self.seed()
        except SingletonViolationError:
            return self.read()

    def update(
        self,
        session: AuthenticatedSession,
        new_state: AlertState,
        message: str | None = None,
    ) -> StateChangeOutcome:
        """
        Overwrite the alert state and message.

        An omitted message clears the previous one.

        Raises:
            AuthorizationError: the caller is not guardian supreme.
            NotFoundError: the singleton was never seeded.
        """
        if not session.is_guardian_supreme:
            raise AuthorizationError(GUARDIAN_REQUIRED)

        actor = self.gateway.actor_for(session.user_id)
        previous = self.read()
        current = self.gateway.update_system_state(actor, new_state, message or None)
        logger.info(
            "Alert state changed: %s -> %s by %s",
            previous.alert_state.value, current.alert_state.value, session.user_id,
        )

        try:
            self.history.log(
                actor,
                ActionType.ALERT_CHANGED,
                description=(
                    f"État d'alerte changé: {previous.alert_state.label} "
                    f"→ {current.alert_state.label}"
                ),
                metadata={"from": previous.alert_state.value, "to": current.alert_state.value},
            )
        except LOrdreError as exc:
            logger.warning(
                "Alert state change %s -> %s committed without audit entry: %s",
                previous.alert_state.value, current.alert_state.value, exc,
            )
            return StateChangeOutcome(
                previous=previous, current=current, audit_recorded=False, audit_error=str(exc),
            )

        return StateChangeOutcome(previous=previous, current=current, audit_recorded=True)
