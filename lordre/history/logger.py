"""
Action History — append-only audit trail of significant actions.

Write side: ``log`` appends one immutable entry in the actor's name. There is
no update and no delete; the store refuses both.

Read side: ``query`` fetches the most recent N entries (N capped by
``history_page_limit``), resolves actor pseudonyms and filters the page by
type and case-insensitive text. Filtering happens over that bounded page, not
the full history.
"""

from __future__ import annotations

import logging
from typing import Any

from lordre.domain.schema import (
    SYSTEM_ACTOR_NAME,
    ActionHistoryEntry,
    ActionType,
    HistoryFilter,
)
from lordre.errors import AuthenticationError
from lordre.governance.policies import Actor
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)

DEFAULT_PAGE_LIMIT = 200


class ActionHistoryLogger:
    def __init__(self, gateway: StoreGateway, page_limit: int = DEFAULT_PAGE_LIMIT) -> None:
        self.gateway = gateway
        self.page_limit = page_limit

    def log(
        self,
        actor: Actor | None,
        action_type: ActionType,
        description: str,
        target_id: str | None = None,
        target_type: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActionHistoryEntry:
        """
        Append an entry.

        Raises:
            AuthenticationError: no authenticated actor.
            AuthorizationError: the actor may not write history.
            StoreError: the append failed.
        """
        if actor is None or actor.user_id is None:
            raise AuthenticationError("Utilisateur non authentifié")

        entry = self.gateway.append_history(
            actor,
            action_type=action_type,
            description=description,
            target_id=target_id,
            target_type=target_type,
            metadata=metadata,
        )
        logger.info(
            "Action logged: type=%s actor=%s target=%s",
            action_type.value, actor.user_id, target_id,
        )
        return entry

    def query(
        self,
        actor: Actor,
        history_filter: HistoryFilter | None = None,
        limit: int | None = None,
    ) -> list[ActionHistoryEntry]:
        """
        Most recent entries first, optionally filtered.

        Args:
            actor: Reader; needs knowledge-base access.
            history_filter: Optional type and search text.
            limit: Page size, never above the configured cap. Missing or
                non-positive values read a full page.
        """
        history_filter = history_filter or HistoryFilter()
        page = self.page_limit if not limit or limit < 1 else min(limit, self.page_limit)

        entries = self.gateway.recent_history(actor, limit=page)
        names = self.gateway.pseudonyms(e.actor_id for e in entries)
        for entry in entries:
            entry.actor_name = names.get(entry.actor_id, SYSTEM_ACTOR_NAME)

        needle = (history_filter.search_text or "").strip().lower()
        return [
            entry for entry in entries
            if (history_filter.action_type is None or entry.action_type == history_filter.action_type)
            and (
                not needle
                or needle in entry.description.lower()
                or needle in (entry.actor_name or "").lower()
            )
        ]
