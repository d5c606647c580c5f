"""Tests for the lordre-history operator listing against a file-backed store."""

from __future__ import annotations

import sys

from lordre.bootstrap import build_services
from lordre.domain.schema import ActionType, AppRole
from lordre.governance.policies import Actor
from lordre.history.audit import main, show_history
from lordre.store.database import Database

from support import create_member, make_settings


def _populate(tmp_path) -> str:
    """Write three history entries to a fresh SQLite file and return its URL."""
    url = f"sqlite:///{tmp_path / 'history.db'}"
    database = Database(url)
    database.initialize()
    services = build_services(make_settings(database_url=url), database=database)
    try:
        orion = create_member(
            services, "a@ordre.fr", "Orion", roles=(AppRole.INITIATE, AppRole.ARCHONTE),
        )
        lyra = create_member(services, "i@ordre.fr", "Lyra")
        services.history.log(Actor(user_id=orion), ActionType.RULE_CREATED, "Nouvelle règle")
        services.history.log(Actor(user_id=lyra), ActionType.VOTE_CAST, "Vote sur la règle 7")
        services.history.log(Actor(user_id=lyra), ActionType.OPINION_CREATED, "Avis sur le Temple")
    finally:
        services.close()
    return url


class TestShowHistory:
    def test_lists_every_entry(self, tmp_path):
        assert show_history(_populate(tmp_path)) == 3

    def test_type_filter(self, tmp_path):
        assert show_history(_populate(tmp_path), action_type=ActionType.RULE_CREATED) == 1

    def test_search_matches_description_and_actor(self, tmp_path):
        url = _populate(tmp_path)
        assert show_history(url, search="RÈGLE") == 2
        assert show_history(url, search="lyra") == 2

    def test_limit(self, tmp_path):
        url = _populate(tmp_path)
        assert show_history(url, limit=1) == 1
        assert show_history(url, limit=-5) == 3

    def test_empty_store(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'empty.db'}"
        database = Database(url)
        database.initialize()
        database.dispose()
        assert show_history(url) == 0


class TestMain:
    def test_prints_filtered_listing(self, tmp_path, monkeypatch, capsys):
        url = _populate(tmp_path)
        monkeypatch.setattr(
            sys, "argv", ["lordre-history", "--database-url", url, "--type", "vote_cast"],
        )
        main()
        out = capsys.readouterr().out
        assert "Historique des actions" in out
        assert "Showing 1 entries" in out
