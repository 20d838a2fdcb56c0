"""Pytest configuration and fixtures."""

import pytest
from pathlib import Path
from fastapi.testclient import TestClient
import tempfile

from dbadmin.config import settings
from dbadmin.dependencies import get_database_admin
from dbadmin.main import app
from dbadmin.models.entities import ColumnDefinition, TableDefinition

WORKSPACE_ID = "ws_test"


@pytest.fixture
def temp_data_dir(monkeypatch):
    """Create temporary data directories for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        tmp_path = Path(tmpdir)

        data_dir = tmp_path / "data"
        workspaces_dir = data_dir / "workspaces"
        metadata_db_path = data_dir / "metadata.duckdb"

        for dir_path in [data_dir, workspaces_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

        # Patch settings
        monkeypatch.setattr(settings, "data_dir", data_dir)
        monkeypatch.setattr(settings, "workspaces_dir", workspaces_dir)
        monkeypatch.setattr(settings, "metadata_db_path", metadata_db_path)

        yield {
            "data_dir": data_dir,
            "workspaces_dir": workspaces_dir,
            "metadata_db_path": metadata_db_path,
        }


@pytest.fixture
def metadata_db(temp_data_dir):
    """Create MetadataDB instance with temporary storage."""
    from dbadmin.metadata import MetadataDB

    db = MetadataDB(temp_data_dir["metadata_db_path"])
    db.initialize()
    return db


@pytest.fixture
def collaborator(temp_data_dir, metadata_db):
    """DuckDB collaborator over the temporary workspaces directory."""
    from dbadmin.duckdb_collaborator import DuckDBCollaborator

    return DuckDBCollaborator(
        workspaces_dir=temp_data_dir["workspaces_dir"],
        metadata=metadata_db,
        query_timeout_seconds=10,
    )


@pytest.fixture
def admin(collaborator, metadata_db):
    """Administration façade wired to the temporary collaborator."""
    from dbadmin.service import WorkspaceDatabaseAdmin

    return WorkspaceDatabaseAdmin(collaborator, audit_sink=metadata_db)


@pytest.fixture
def client(admin):
    """Create a test client whose requests use the temporary façade."""
    app.dependency_overrides[get_database_admin] = lambda: admin
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def workspace_id():
    return WORKSPACE_ID


@pytest.fixture
def orders_table(admin, workspace_id):
    """Table with an integer primary key and a mix of column types."""
    admin.create_table(
        workspace_id,
        TableDefinition(
            name="orders",
            columns=[
                ColumnDefinition(name="id", type="INTEGER", nullable=False),
                ColumnDefinition(name="customer", type="VARCHAR"),
                ColumnDefinition(name="amount", type="DECIMAL(10,2)"),
                ColumnDefinition(name="paid", type="BOOLEAN", default="false"),
                ColumnDefinition(name="note", type="VARCHAR"),
            ],
            primary_key=["id"],
        ),
    )
    return "orders"


@pytest.fixture
def notes_table(admin, workspace_id):
    """Table without a primary key."""
    admin.create_table(
        workspace_id,
        TableDefinition(
            name="notes",
            columns=[
                ColumnDefinition(name="id", type="INTEGER"),
                ColumnDefinition(name="body", type="VARCHAR"),
            ],
        ),
    )
    return "notes"
