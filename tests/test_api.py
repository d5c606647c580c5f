"""
Tests for the HTTP API.

Validates:
- Admin endpoint status codes, CORS headers and generic 500s
- Member API authentication, role checks and query bounds
- Health check
"""

from __future__ import annotations

from unittest import mock

from fastapi.testclient import TestClient

from lordre.api.app import app, state
from lordre.domain.schema import AppRole, Grade
from lordre.governance.policies import Actor

from support import PASSWORD, bearer, create_member, make_services

ADMIN_PATH = "/functions/v1/admin-actions"


class TestAdminEndpoint:
    def setup_method(self):
        self.services = make_services()
        state.install(self.services)
        self.client = TestClient(app)
        self.guardian_id = create_member(
            self.services, "g@ordre.fr", "Gardien", roles=(AppRole.GUARDIAN_SUPREME,),
        )
        self.member_id = create_member(self.services, "m@ordre.fr", "Membre")
        self.guardian = {"Authorization": bearer(self.services, self.guardian_id)}

    def teardown_method(self):
        state.install(None)

    def test_preflight_returns_cors_headers(self):
        resp = self.client.options(ADMIN_PATH)
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "authorization" in resp.headers["access-control-allow-headers"]

    def test_missing_token_is_401_with_cors(self):
        resp = self.client.post(ADMIN_PATH, json={"action": "create_user"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Non autorisé"}
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_non_guardian_is_403(self):
        resp = self.client.post(
            ADMIN_PATH,
            json={"action": "delete_user", "userId": self.guardian_id},
            headers={"Authorization": bearer(self.services, self.member_id)},
        )
        assert resp.status_code == 403
        assert "Gardien Suprême" in resp.json()["error"]

    def test_create_user_returns_user_id(self):
        resp = self.client.post(
            ADMIN_PATH,
            json={"action": "create_user", "email": "luna@ordre.fr", "password": PASSWORD, "pseudonym": "Luna"},
            headers=self.guardian,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert self.services.gateway.get_profile(body["userId"]).pseudonym == "Luna"
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_validation_error_is_400(self):
        resp = self.client.post(ADMIN_PATH, json={"action": "create_user"}, headers=self.guardian)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Email, mot de passe et pseudonyme requis"

    def test_self_delete_is_400(self):
        resp = self.client.post(
            ADMIN_PATH, json={"action": "delete_user", "userId": self.guardian_id}, headers=self.guardian,
        )
        assert resp.status_code == 400
        assert self.services.gateway.get_profile(self.guardian_id) is not None

    def test_malformed_body_is_400(self):
        resp = self.client.post(
            ADMIN_PATH,
            content=b"{not json",
            headers={**self.guardian, "Content-Type": "application/json"},
        )
        assert resp.status_code == 400
        assert resp.headers["access-control-allow-origin"] == "*"

    def test_update_user(self):
        resp = self.client.post(
            ADMIN_PATH,
            json={"action": "update_user", "targetUserId": self.member_id, "grade": "sage"},
            headers=self.guardian,
        )
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert self.services.gateway.get_profile(self.member_id).grade.value == "sage"

    def test_unexpected_failure_is_generic_500_with_cors(self):
        with mock.patch.object(
            self.services.admin, "update_user", side_effect=RuntimeError("secret"),
        ):
            resp = self.client.post(
                ADMIN_PATH,
                json={"action": "update_user", "targetUserId": self.member_id, "grade": "sage"},
                headers=self.guardian,
            )
        assert resp.status_code == 500
        assert resp.json() == {"error": "Erreur serveur interne"}
        assert "secret" not in resp.text
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "authorization" in resp.headers["access-control-allow-headers"]
        assert self.services.gateway.get_profile(self.member_id).grade.value == "novice"


class TestMemberApi:
    def setup_method(self):
        self.services = make_services()
        state.install(self.services)
        self.client = TestClient(app)
        self.guardian_id = create_member(
            self.services, "g@ordre.fr", "Gardien", roles=(AppRole.GUARDIAN_SUPREME,),
        )
        self.archonte_id = create_member(
            self.services, "a@ordre.fr", "Orion", roles=(AppRole.INITIATE, AppRole.ARCHONTE),
        )
        self.member_id = create_member(self.services, "m@ordre.fr", "Lyra")

    def teardown_method(self):
        state.install(None)

    def _auth(self, user_id: str) -> dict[str, str]:
        return {"Authorization": bearer(self.services, user_id)}

    def test_system_state_requires_token(self):
        assert self.client.get("/api/system-state").status_code == 401

    def test_read_system_state(self):
        resp = self.client.get("/api/system-state", headers=self._auth(self.member_id))
        assert resp.status_code == 200
        assert resp.json()["alert_state"] == "normal"
        assert resp.json()["alert_label"] == "Normal"

    def test_member_cannot_change_alert_state(self):
        resp = self.client.put(
            "/api/system-state", json={"alert_state": "crise"}, headers=self._auth(self.member_id),
        )
        assert resp.status_code == 403
        assert self.services.system_state.read().alert_state.value == "normal"

    def test_guardian_changes_alert_state(self):
        resp = self.client.put(
            "/api/system-state",
            json={"alert_state": "vigilance", "alert_message": "Prudence"},
            headers=self._auth(self.guardian_id),
        )
        assert resp.status_code == 200
        assert resp.json()["current"]["alert_state"] == "vigilance"
        assert resp.json()["audit_recorded"] is True

    def test_knowledge_access(self):
        anonymous = self.client.get("/api/knowledge-access").json()
        archonte = self.client.get("/api/knowledge-access", headers=self._auth(self.archonte_id)).json()
        member = self.client.get("/api/knowledge-access", headers=self._auth(self.member_id)).json()

        assert anonymous["has_access"] is False
        assert archonte == {"has_access": True, "is_archonte": True, "is_guardian_supreme": False}
        assert member["has_access"] is False

    def test_history_requires_knowledge_base_access(self):
        resp = self.client.get("/api/action-history", headers=self._auth(self.member_id))
        assert resp.status_code == 403

    def test_append_and_read_history(self):
        created = self.client.post(
            "/api/action-history",
            json={"action_type": "vote_cast", "description": "Vote sur la règle 7"},
            headers=self._auth(self.member_id),
        )
        assert created.status_code == 201

        resp = self.client.get(
            "/api/action-history",
            params={"type": "vote_cast", "q": "règle"},
            headers=self._auth(self.archonte_id),
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["count"] == 1
        assert body["entries"][0]["actor_name"] == "Lyra"
        assert body["entries"][0]["action_label"] == "Vote enregistré"

    def test_history_limit_must_be_positive(self):
        for n in range(3):
            self.client.post(
                "/api/action-history",
                json={"action_type": "vote_cast", "description": f"Vote {n}"},
                headers=self._auth(self.member_id),
            )
        auth = self._auth(self.archonte_id)
        assert self.client.get("/api/action-history", params={"limit": -1}, headers=auth).status_code == 422
        assert self.client.get("/api/action-history", params={"limit": 0}, headers=auth).status_code == 422
        assert self.client.get("/api/action-history", params={"limit": 2}, headers=auth).json()["count"] == 2

    def test_leaderboard(self):
        resp = self.client.get("/api/leaderboard", headers=self._auth(self.member_id))
        assert resp.status_code == 200
        assert len(resp.json()["entries"]) == 3

    def test_leaderboard_limit_must_be_positive(self):
        auth = self._auth(self.member_id)
        assert self.client.get("/api/leaderboard", params={"limit": -1}, headers=auth).status_code == 422
        resp = self.client.get("/api/leaderboard", params={"limit": 2}, headers=auth)
        assert len(resp.json()["entries"]) == 2

    def test_own_profile_shows_grade_progression(self):
        resp = self.client.get("/api/profile", headers=self._auth(self.member_id))
        assert resp.status_code == 200
        body = resp.json()
        assert body["pseudonym"] == "Lyra"
        assert body["grade"] == "novice"
        assert body["grade_progress"] == 16.7
        assert body["next_grade"] == "apprenti"

    def test_top_grade_has_no_next_grade(self):
        self.services.gateway.update_profile(
            Actor.service(), self.guardian_id, {"grade": Grade.ORACLE},
        )
        body = self.client.get("/api/profile", headers=self._auth(self.guardian_id)).json()
        assert body["grade_progress"] == 100.0
        assert body["next_grade"] is None

    def test_profile_requires_token(self):
        assert self.client.get("/api/profile").status_code == 401

    def test_sign_in(self):
        resp = self.client.post("/api/auth/sign-in", json={"email": "m@ordre.fr", "password": PASSWORD})
        assert resp.status_code == 200
        token = resp.json()["access_token"]
        me = self.client.get("/api/system-state", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200

    def test_bad_credentials(self):
        resp = self.client.post("/api/auth/sign-in", json={"email": "m@ordre.fr", "password": "wrong!"})
        assert resp.status_code == 401

    def test_health(self):
        resp = self.client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"
        assert resp.json()["refresh_interval_seconds"] == 30
