"""Credential lifecycle: scoped database roles with one-time secret disclosure.

State machine per role::

    active --rotate--> active   (new secret, same identity)
    active --revoke--> revoked  (terminal)
    active --time----> expired  (terminal)

Plaintext secrets exist only inside IssuedCredential values returned by
create_role and rotate_role. The collaborator receives the secret to hash it;
nothing here keeps a copy.
"""

import secrets
from datetime import datetime, timezone

import structlog

from dbadmin import metrics
from dbadmin.collaborator import SQLCollaborator
from dbadmin.config import settings
from dbadmin.errors import AlreadyExists, AlreadyRevoked, InvalidRequest, NotFound
from dbadmin.models.entities import (
    TERMINAL_ROLE_STATUSES,
    DatabaseRole,
    IssuedCredential,
    RoleStatus,
    RoleType,
)

logger = structlog.get_logger()

EXPIRED_REASON = "expired"
USERNAME_MAX_LENGTH = 32


def _generate_secret() -> str:
    """Generate a secure random role secret."""
    return secrets.token_urlsafe(settings.role_secret_bytes)


def generate_db_username(workspace_id: str, role_type: RoleType) -> str:
    """Generate a database username for a role, e.g. ``wsr_ws123_r_1a2b3c4d``."""
    prefix = workspace_id.replace("-", "")[:8]
    return f"wsr_{prefix}_{role_type.value[0]}_{secrets.token_hex(4)}"[:USERNAME_MAX_LENGTH]


def _is_past(moment: datetime | None, now: datetime) -> bool:
    if moment is None:
        return False
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment <= now


class CredentialLifecycleManager:
    def __init__(self, collaborator: SQLCollaborator) -> None:
        self._collaborator = collaborator

    def _expire_if_due(self, workspace_id: str, role: DatabaseRole, now: datetime) -> DatabaseRole:
        if role.status == RoleStatus.ACTIVE and _is_past(role.expires_at, now):
            try:
                role = self._collaborator.revoke_role(
                    workspace_id, role.id, EXPIRED_REASON, status=RoleStatus.EXPIRED
                )
            except AlreadyRevoked:
                # Another operator ended the role first
                return self._get_role(workspace_id, role.id)
            metrics.ROLE_EVENTS.labels(event="expire", role_type=role.role_type.value).inc()
            logger.info(
                "database_role_expired",
                workspace_id=workspace_id,
                role_id=role.id,
                db_username=role.db_username,
            )
        return role

    def _get_role(self, workspace_id: str, role_id: str) -> DatabaseRole:
        role = self._collaborator.get_role(workspace_id, role_id)
        if role is None:
            raise NotFound(
                f"Role {role_id} not found",
                {"workspace_id": workspace_id, "role_id": role_id},
            )
        return role

    def list_roles(self, workspace_id: str) -> list[DatabaseRole]:
        """All roles of the workspace, active and inactive, newest first."""
        now = datetime.now(timezone.utc)
        roles = [
            self._expire_if_due(workspace_id, role, now)
            for role in self._collaborator.list_roles(workspace_id)
        ]
        return sorted(roles, key=lambda r: (r.created_at, r.id), reverse=True)

    def create_role(
        self,
        workspace_id: str,
        role_type: RoleType,
        expires_at: datetime | None = None,
    ) -> IssuedCredential:
        """
        Issue a new role and return it with its plaintext secret.

        Raises:
            AlreadyExists: an active role of this type already exists
            InvalidRequest: expires_at is in the past
        """
        now = datetime.now(timezone.utc)
        if _is_past(expires_at, now):
            raise InvalidRequest(
                "expires_at must be in the future",
                {"expires_at": expires_at.isoformat()},
            )

        for role in self.list_roles(workspace_id):
            if role.role_type == role_type and role.status == RoleStatus.ACTIVE:
                raise AlreadyExists(
                    f"An active {role_type.value} role already exists for workspace {workspace_id}",
                    {"workspace_id": workspace_id, "role_type": role_type.value, "role_id": role.id},
                )

        secret = _generate_secret()
        role = self._collaborator.create_role(
            workspace_id,
            role_type,
            generate_db_username(workspace_id, role_type),
            secret,
            expires_at,
        )
        metrics.ROLE_EVENTS.labels(event="create", role_type=role_type.value).inc()
        logger.info(
            "database_role_created",
            workspace_id=workspace_id,
            role_id=role.id,
            db_username=role.db_username,
            role_type=role_type.value,
        )
        return IssuedCredential(role=role, plaintext_secret=secret)

    def rotate_role(self, workspace_id: str, role_id: str) -> IssuedCredential:
        """
        Replace an active role's secret. The old secret stops working on return.

        Raises:
            NotFound: role missing, foreign or not active
        """
        role = self._expire_if_due(
            workspace_id, self._get_role(workspace_id, role_id), datetime.now(timezone.utc)
        )
        if role.status != RoleStatus.ACTIVE:
            raise NotFound(
                f"Role {role_id} is not active",
                {"role_id": role_id, "status": role.status.value},
            )

        secret = _generate_secret()
        role = self._collaborator.rotate_role(workspace_id, role_id, secret)
        metrics.ROLE_EVENTS.labels(event="rotate", role_type=role.role_type.value).inc()
        logger.info(
            "database_role_rotated",
            workspace_id=workspace_id,
            role_id=role_id,
            db_username=role.db_username,
        )
        return IssuedCredential(role=role, plaintext_secret=secret)

    def revoke_role(self, workspace_id: str, role_id: str, reason: str) -> DatabaseRole:
        """
        Permanently revoke a role.

        Raises:
            InvalidRequest: reason is blank
            NotFound: role missing or foreign
            AlreadyRevoked: role already revoked or expired
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequest("A reason is required to revoke a role", {"role_id": role_id})

        role = self._expire_if_due(
            workspace_id, self._get_role(workspace_id, role_id), datetime.now(timezone.utc)
        )
        if role.status in TERMINAL_ROLE_STATUSES:
            raise AlreadyRevoked(
                f"Role {role_id} is already {role.status.value}",
                {"role_id": role_id, "status": role.status.value},
            )

        role = self._collaborator.revoke_role(workspace_id, role_id, reason)
        metrics.ROLE_EVENTS.labels(event="revoke", role_type=role.role_type.value).inc()
        logger.info(
            "database_role_revoked",
            workspace_id=workspace_id,
            role_id=role_id,
            db_username=role.db_username,
        )
        return role
