"""Tests for the database role lifecycle."""

from datetime import datetime, timedelta, timezone

import pytest

from dbadmin.credentials import generate_db_username
from dbadmin.errors import (
    AlreadyExists,
    AlreadyRevoked,
    InvalidCredentials,
    InvalidRequest,
    NotFound,
    PermissionDenied,
)
from dbadmin.models.entities import RoleStatus, RoleType


class TestCreateRole:
    def test_create_returns_secret_once(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.READ)
        assert issued.plaintext_secret
        assert issued.role.status == RoleStatus.ACTIVE
        assert issued.role.db_username.startswith("wsr_ws_test_r_")

        listed = admin.list_roles(workspace_id)
        assert [r.id for r in listed] == [issued.role.id]
        assert "secret" not in listed[0].model_dump_json()
        assert issued.plaintext_secret not in listed[0].model_dump_json()

    def test_secret_is_stored_hashed(self, admin, metadata_db, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        record = metadata_db.get_role(issued.role.id)
        assert record["secret_hash"] != issued.plaintext_secret
        assert len(record["secret_hash"]) == 64

    def test_one_active_role_per_type(self, admin, workspace_id):
        admin.create_role(workspace_id, RoleType.READ)
        with pytest.raises(AlreadyExists):
            admin.create_role(workspace_id, RoleType.READ)
        admin.create_role(workspace_id, RoleType.ADMIN)

    def test_expiry_in_the_past(self, admin, workspace_id):
        with pytest.raises(InvalidRequest):
            admin.create_role(
                workspace_id, RoleType.READ, datetime.now(timezone.utc) - timedelta(minutes=1)
            )

    def test_roles_are_scoped_to_workspace(self, admin, workspace_id):
        admin.create_role(workspace_id, RoleType.READ)
        assert admin.list_roles("ws_other") == []

    def test_username_length(self):
        username = generate_db_username("a-very-long-workspace-identifier", RoleType.ADMIN)
        assert len(username) <= 32
        assert username.startswith("wsr_averylon_a_")


class TestRotateRole:
    def test_rotation_replaces_secret(self, admin, collaborator, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.READ)
        rotated = admin.rotate_role(workspace_id, issued.role.id)

        assert rotated.role.id == issued.role.id
        assert rotated.role.db_username == issued.role.db_username
        assert rotated.plaintext_secret != issued.plaintext_secret
        assert rotated.role.last_rotated_at is not None

        with pytest.raises(InvalidCredentials):
            collaborator.authenticate(issued.role.db_username, issued.plaintext_secret)
        assert collaborator.authenticate(rotated.role.db_username, rotated.plaintext_secret).id == issued.role.id

    def test_rotate_revoked_role(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.READ)
        admin.revoke_role(workspace_id, issued.role.id, "leaked")
        with pytest.raises(NotFound):
            admin.rotate_role(workspace_id, issued.role.id)

    def test_rotate_foreign_role(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.READ)
        with pytest.raises(NotFound):
            admin.rotate_role("ws_other", issued.role.id)


class TestRevokeRole:
    def test_revoke(self, admin, collaborator, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        role = admin.revoke_role(workspace_id, issued.role.id, "  no longer needed ")

        assert role.status == RoleStatus.REVOKED
        assert role.revoked_reason == "no longer needed"
        assert role.revoked_at is not None
        with pytest.raises(InvalidCredentials):
            collaborator.authenticate(issued.role.db_username, issued.plaintext_secret)

    def test_revoked_role_stays_listed(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        admin.revoke_role(workspace_id, issued.role.id, "rotation policy")
        assert [r.status for r in admin.list_roles(workspace_id)] == [RoleStatus.REVOKED]

    def test_double_revoke(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        admin.revoke_role(workspace_id, issued.role.id, "first")
        with pytest.raises(AlreadyRevoked):
            admin.revoke_role(workspace_id, issued.role.id, "second")

    def test_blank_reason(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        with pytest.raises(InvalidRequest):
            admin.revoke_role(workspace_id, issued.role.id, "   ")

    def test_new_role_after_revoke(self, admin, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.READ)
        admin.revoke_role(workspace_id, issued.role.id, "replaced")
        replacement = admin.create_role(workspace_id, RoleType.READ)
        assert replacement.role.id != issued.role.id

    def test_missing_role(self, admin, workspace_id):
        with pytest.raises(NotFound):
            admin.revoke_role(workspace_id, "role_missing", "gone")


class TestConcurrentRoleChanges:
    """Another operator ends the role between our status read and our update."""

    @pytest.fixture
    def stale_role(self, admin, collaborator, metadata_db, workspace_id, monkeypatch):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        stale_record = metadata_db.get_role(issued.role.id)
        stale_snapshot = collaborator.get_role(workspace_id, issued.role.id)

        admin.revoke_role(workspace_id, issued.role.id, "first")

        monkeypatch.setattr(metadata_db, "get_role", lambda role_id: dict(stale_record))
        monkeypatch.setattr(collaborator, "get_role", lambda ws, role_id: stale_snapshot)
        return issued

    def test_second_revoke_is_rejected(self, admin, metadata_db, workspace_id, stale_role):
        with pytest.raises(AlreadyRevoked):
            admin.revoke_role(workspace_id, stale_role.role.id, "second")

        record = metadata_db.get_role_by_username(stale_role.role.db_username)
        assert record["status"] == "revoked"
        assert record["revoked_reason"] == "first"

    def test_rotation_stores_and_discloses_nothing(self, admin, metadata_db, workspace_id, stale_role):
        before = metadata_db.get_role_by_username(stale_role.role.db_username)["secret_hash"]
        with pytest.raises(NotFound):
            admin.rotate_role(workspace_id, stale_role.role.id)

        record = metadata_db.get_role_by_username(stale_role.role.db_username)
        assert record["secret_hash"] == before
        assert record["last_rotated_at"] is None

    def test_conditional_updates_report_changed_rows(self, metadata_db, stale_role):
        now = datetime.now(timezone.utc)
        assert metadata_db.set_role_status(stale_role.role.id, "revoked", now, "again") == 0
        assert metadata_db.update_role_secret(stale_role.role.id, "0" * 64, now) == 0


class TestExpiry:
    def _backdate(self, metadata_db, role_id):
        metadata_db.execute_write(
            "UPDATE database_roles SET expires_at = ? WHERE id = ?",
            [datetime(2000, 1, 1), role_id],
        )

    def test_expired_role_is_reported_and_blocked(self, admin, collaborator, metadata_db, workspace_id):
        issued = admin.create_role(
            workspace_id, RoleType.READ, datetime.now(timezone.utc) + timedelta(hours=1)
        )
        self._backdate(metadata_db, issued.role.id)

        with pytest.raises(InvalidCredentials):
            collaborator.authenticate(issued.role.db_username, issued.plaintext_secret)

        roles = admin.list_roles(workspace_id)
        assert roles[0].status == RoleStatus.EXPIRED

        with pytest.raises(AlreadyRevoked):
            admin.revoke_role(workspace_id, issued.role.id, "too late")


class TestRoleScopedExecution:
    """Statements executed with a role's credentials respect its template."""

    def test_read_role_may_select_but_not_write(self, admin, collaborator, workspace_id, orders_table):
        admin.insert_row(workspace_id, orders_table, {"id": 1, "customer": "alice"})
        issued = admin.create_role(workspace_id, RoleType.READ)
        username, secret = issued.role.db_username, issued.plaintext_secret

        result = collaborator.execute_as(workspace_id, username, secret, "SELECT customer FROM orders")
        assert result.rows == [{"customer": "alice"}]

        with pytest.raises(PermissionDenied):
            collaborator.execute_as(workspace_id, username, secret, "DELETE FROM orders")
        with pytest.raises(PermissionDenied):
            collaborator.execute_as(
                workspace_id, username, secret, "WITH x AS (SELECT 1) DELETE FROM orders"
            )

    def test_write_role_may_not_alter(self, admin, collaborator, workspace_id, orders_table):
        issued = admin.create_role(workspace_id, RoleType.WRITE)
        username, secret = issued.role.db_username, issued.plaintext_secret

        result = collaborator.execute_as(
            workspace_id, username, secret, "INSERT INTO orders (id) VALUES (5)"
        )
        assert result.affected_rows == 1
        with pytest.raises(PermissionDenied):
            collaborator.execute_as(workspace_id, username, secret, "DROP TABLE orders")

    def test_multiple_statements_denied(self, admin, collaborator, workspace_id, orders_table):
        issued = admin.create_role(workspace_id, RoleType.ADMIN)
        with pytest.raises(PermissionDenied):
            collaborator.execute_as(
                workspace_id,
                issued.role.db_username,
                issued.plaintext_secret,
                "SELECT 1; DROP TABLE orders",
            )

    def test_role_bound_to_its_workspace(self, admin, collaborator, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.ADMIN)
        with pytest.raises(PermissionDenied):
            collaborator.execute_as("ws_other", issued.role.db_username, issued.plaintext_secret, "SELECT 1")

    def test_wrong_secret(self, admin, collaborator, workspace_id):
        issued = admin.create_role(workspace_id, RoleType.ADMIN)
        with pytest.raises(InvalidCredentials):
            collaborator.execute_as(workspace_id, issued.role.db_username, "nope", "SELECT 1")
