"""
L'Ordre — hosted identity provider (Supabase GoTrue) integration.

A thin wrapper over the GoTrue admin REST API. Administrative calls are made
with the service-role key; password sign-in uses the anon key. Token
verification is local (shared JWT secret) and never calls the service.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from lordre.domain.schema import Identity
from lordre.errors import AuthenticationError, IdentityProviderError
from lordre.identity.provider import IdentityProvider
from lordre.identity.tokens import TokenVerifier

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        for key in ("msg", "message", "error_description", "error"):
            if data.get(key):
                return str(data[key])
    return f"HTTP {resp.status_code}"


def _identity(data: dict[str, Any]) -> Identity:
    user = data.get("user", data)
    return Identity(
        id=user["id"],
        email=user.get("email"),
        email_confirmed=user.get("email_confirmed_at") is not None,
        created_at=user.get("created_at"),
    )


class GoTrueIdentityProvider(IdentityProvider):
    """
    Synchronous GoTrue client.

    Uses ``httpx.Client``; each admin operation is one request, so a hung call
    is bounded only by ``timeout``.
    """

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        anon_key: str,
        tokens: TokenVerifier,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        super().__init__(tokens)
        self.base_url = base_url.rstrip("/")
        self._service_key = service_role_key
        self._anon_key = anon_key
        self._client = httpx.Client(
            base_url=f"{self.base_url}/auth/v1",
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    def close(self) -> None:
        if not self._client.is_closed:
            self._client.close()

    def __enter__(self) -> GoTrueIdentityProvider:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def _admin_headers(self) -> dict[str, str]:
        return {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("GoTrue request failed: %s %s: %s", method, path, exc)
            raise IdentityProviderError(str(exc)) from exc
        if resp.is_error:
            message = _error_message(resp)
            logger.error("GoTrue %s %s -> %d: %s", method, path, resp.status_code, message)
            raise IdentityProviderError(message)
        return resp

    # ── Admin ──────────────────────────────────────────────────

    def create_user(self, email: str, password: str, email_confirm: bool = True) -> Identity:
        resp = self._request(
            "POST", "/admin/users",
            headers=self._admin_headers,
            json={"email": email, "password": password, "email_confirm": email_confirm},
        )
        identity = _identity(resp.json())
        logger.info("GoTrue user created: id=%s", identity.id)
        return identity

    def update_user(
        self,
        user_id: str,
        email: str | None = None,
        password: str | None = None,
    ) -> Identity:
        body: dict[str, str] = {}
        if email is not None:
            body["email"] = email
        if password is not None:
            body["password"] = password
        resp = self._request(
            "PUT", f"/admin/users/{user_id}", headers=self._admin_headers, json=body,
        )
        return _identity(resp.json())

    def delete_user(self, user_id: str) -> None:
        self._request("DELETE", f"/admin/users/{user_id}", headers=self._admin_headers)
        logger.info("GoTrue user deleted: id=%s", user_id)

    # ── Sessions ───────────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> str:
        try:
            resp = self._client.post(
                "/token",
                params={"grant_type": "password"},
                headers={"apikey": self._anon_key},
                json={"email": email, "password": password},
            )
        except httpx.HTTPError as exc:
            raise IdentityProviderError(str(exc)) from exc
        if resp.status_code in (400, 401):
            raise AuthenticationError(_error_message(resp))
        if resp.is_error:
            raise IdentityProviderError(_error_message(resp))
        return resp.json()["access_token"]
