"""
Administrative Action Service — member lifecycle for the Guardian Supreme.

Every command goes through the same gate:

    bearer token → verified identity → direct guardian_supreme lookup → command

The role is always read from the store, never taken from token claims. A
failure anywhere in the gate rejects the request before any mutation.

Commands are sequences of dependent identity-provider and store calls:

- ``create_user``: identity → profile → default role. A profile failure deletes
  the new identity again (compensation); a role failure is logged and the
  command still succeeds.
- ``update_user``: credential update (email/password) then profile update
  (pseudonym/grade/status), each only when it has fields. A credential failure
  aborts before the profile is touched.
- ``delete_user``: refuses self-deletion, then deletes the identity; profile and
  roles cascade.

Nothing is retried. Failures are wrapped with the step that failed and
returned to the caller.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from lordre.domain.schema import (
    ActionType,
    AppRole,
    Grade,
    Identity,
    MemberStatus,
)
from lordre.errors import (
    AuthorizationError,
    DependencyError,
    LOrdreError,
    NotFoundError,
    ValidationError,
)
from lordre.governance.policies import Actor
from lordre.governance.saga import Saga, StepResults
from lordre.history.logger import ActionHistoryLogger
from lordre.identity.provider import IdentityProvider
from lordre.identity.tokens import extract_bearer
from lordre.store.gateway import StoreGateway

logger = logging.getLogger(__name__)

GUARDIAN_ONLY = "Accès refusé. Seul le Gardien Suprême peut effectuer cette action."


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# ── Commands ───────────────────────────────────────────────────


class _Command(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_fields(cls, value: Any) -> Any:
        return _blank_to_none(value)


class CreateUserCommand(_Command):
    email: str | None = None
    password: str | None = None
    pseudonym: str | None = None
    grade: Grade | None = None


class UpdateUserCommand(_Command):
    target_user_id: str | None = Field(
        default=None, validation_alias=AliasChoices("targetUserId", "target_user_id"),
    )
    email: str | None = None
    password: str | None = None
    pseudonym: str | None = None
    grade: Grade | None = None
    status: MemberStatus | None = None

    @property
    def credential_updates(self) -> dict[str, str]:
        return {k: v for k, v in (("email", self.email), ("password", self.password)) if v}

    @property
    def profile_updates(self) -> dict[str, Any]:
        fields = (("pseudonym", self.pseudonym), ("grade", self.grade), ("status", self.status))
        return {k: v for k, v in fields if v}


class DeleteUserCommand(_Command):
    target_user_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("targetUserId", "userId", "target_user_id"),
    )


def _parse(command_cls: type[_Command], data: dict[str, Any]) -> Any:
    try:
        return command_cls.model_validate(data)
    except PydanticValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
        raise ValidationError(f"Valeur invalide: {fields}") from exc


# ── Service ────────────────────────────────────────────────────


class AdminActionService:
    def __init__(
        self,
        identity: IdentityProvider,
        gateway: StoreGateway,
        history: ActionHistoryLogger | None = None,
    ) -> None:
        self.identity = identity
        self.gateway = gateway
        self.history = history

    # ── Gate ───────────────────────────────────────────────────

    def authorize(self, authorization: str | None) -> str:
        """
        Validate the bearer token and require guardian_supreme.

        Returns:
            The caller's user id.

        Raises:
            AuthenticationError: missing or invalid token.
            AuthorizationError: caller is not guardian supreme.
        """
        token = extract_bearer(authorization)
        claims = self.identity.verify_token(token)

        try:
            assignment = self.gateway.find_role(
                Actor.service(), claims.sub, AppRole.GUARDIAN_SUPREME,
            )
        except LOrdreError as exc:
            logger.error("Role check failed for %s: %s", claims.sub, exc)
            raise AuthorizationError(GUARDIAN_ONLY) from exc

        if assignment is None:
            logger.warning("Admin action refused for non-guardian %s", claims.sub)
            raise AuthorizationError(GUARDIAN_ONLY)
        return claims.sub

    def handle(self, authorization: str | None, body: dict[str, Any]) -> dict[str, Any]:
        """Authorize the caller, then dispatch ``body["action"]``."""
        caller_id = self.authorize(authorization)

        data = dict(body)
        action = data.pop("action", None)
        logger.info("Admin action requested: %s by %s", action, caller_id)

        if action == "create_user":
            return self.create_user(caller_id, _parse(CreateUserCommand, data))
        if action == "update_user":
            return self.update_user(caller_id, _parse(UpdateUserCommand, data))
        if action == "delete_user":
            return self.delete_user(caller_id, _parse(DeleteUserCommand, data))
        raise ValidationError("Action non reconnue")

    # ── Commands ───────────────────────────────────────────────

    def create_user(self, caller_id: str, command: CreateUserCommand) -> dict[str, Any]:
        if not command.email or not command.password or not command.pseudonym:
            raise ValidationError("Email, mot de passe et pseudonyme requis")

        grade = command.grade or Grade.NOVICE
        service = Actor.service()

        def create_identity(results: StepResults) -> Identity:
            try:
                return self.identity.create_user(command.email, command.password, email_confirm=True)
            except DependencyError as exc:
                raise DependencyError(f"Erreur création: {exc.message}") from exc

        def delete_identity(results: StepResults) -> None:
            self.identity.delete_user(results["identity"].id)
            logger.warning("Rolled back identity %s after profile failure", results["identity"].id)

        def create_profile(results: StepResults):
            try:
                return self.gateway.insert_profile(
                    service,
                    results["identity"].id,
                    pseudonym=command.pseudonym,
                    grade=grade,
                    status=MemberStatus.ACTIVE,
                )
            except DependencyError as exc:
                raise DependencyError(f"Erreur profil: {exc.message}") from exc

        def assign_initiate(results: StepResults):
            return self.gateway.insert_role(service, results["identity"].id, AppRole.INITIATE)

        outcome = (
            Saga("create_user")
            .step("identity", create_identity, compensate=delete_identity)
            .step("profile", create_profile)
            .step("role", assign_initiate, required=False)
            .execute()
        )

        user_id = outcome.results["identity"].id
        for warning in outcome.warnings:
            logger.error("User %s created without default role: %s", user_id, warning)
        logger.info("User created successfully: %s", user_id)

        self._audit(
            caller_id,
            f"Membre créé: {command.pseudonym} ({grade.value})",
            target_id=user_id,
            metadata={"operation": "create_user", "grade": grade.value},
        )
        return {"success": True, "userId": user_id}

    def update_user(self, caller_id: str, command: UpdateUserCommand) -> dict[str, Any]:
        if not command.target_user_id:
            raise ValidationError("ID utilisateur requis")

        target = command.target_user_id
        credentials = command.credential_updates
        if credentials:
            try:
                self.identity.update_user(target, **credentials)
            except DependencyError as exc:
                raise DependencyError(f"Erreur mise à jour auth: {exc.message}") from exc

        profile_fields = command.profile_updates
        if profile_fields:
            try:
                self.gateway.update_profile(Actor.service(), target, profile_fields)
            except (DependencyError, NotFoundError) as exc:
                raise DependencyError(f"Erreur mise à jour profil: {exc.message}") from exc

        logger.info("User updated successfully: %s", target)

        changed = sorted(list(credentials) + list(profile_fields))
        if changed:
            self._audit(
                caller_id,
                f"Membre modifié: {', '.join(changed)}",
                target_id=target,
                metadata={
                    "operation": "update_user",
                    "fields": changed,
                    **{k: getattr(v, "value", v) for k, v in profile_fields.items()},
                },
            )
        return {"success": True}

    def delete_user(self, caller_id: str, command: DeleteUserCommand) -> dict[str, Any]:
        if not command.target_user_id:
            raise ValidationError("ID utilisateur requis")

        target = command.target_user_id
        if target == caller_id:
            raise ValidationError("Vous ne pouvez pas vous supprimer vous-même")

        try:
            self.identity.delete_user(target)
        except DependencyError as exc:
            raise DependencyError(f"Erreur suppression: {exc.message}") from exc

        logger.info("User deleted successfully: %s", target)
        self._audit(
            caller_id,
            "Membre supprimé",
            target_id=target,
            metadata={"operation": "delete_user"},
        )
        return {"success": True}

    # ── Internal ───────────────────────────────────────────────

    def _audit(
        self,
        caller_id: str,
        description: str,
        target_id: str,
        metadata: dict[str, Any],
    ) -> None:
        if self.history is None:
            return
        try:
            self.history.log(
                Actor(user_id=caller_id),
                ActionType.STATUS_CHANGED,
                description=description,
                target_id=target_id,
                target_type="profile",
                metadata=metadata,
            )
        except LOrdreError as exc:
            logger.warning("Admin action on %s not recorded in history: %s", target_id, exc)
