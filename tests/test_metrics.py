"""Tests for metrics path normalization and error metrics."""

import pytest
from fastapi.testclient import TestClient

from dbadmin.middleware import normalize_path


class TestNormalizePath:
    @pytest.mark.parametrize(
        "path,expected",
        [
            ("/", "/"),
            ("/health", "/health"),
            ("/workspaces/ws1/database/tables", "/workspaces/{workspace_id}/database/tables"),
            (
                "/workspaces/ws1/database/tables/orders/rows/query",
                "/workspaces/{workspace_id}/database/tables/{table_name}/rows/query",
            ),
            (
                "/workspaces/ws1/database/routines/FUNCTION/add_one",
                "/workspaces/{workspace_id}/database/routines/{kind}/{routine_name}",
            ),
            (
                "/workspaces/ws1/database/roles/role_1/rotate",
                "/workspaces/{workspace_id}/database/roles/{role_id}/rotate",
            ),
            ("/workspaces/ws1/database/routines", "/workspaces/{workspace_id}/database/routines"),
            ("/workspaces/ws1/database/schema-graph", "/workspaces/{workspace_id}/database/schema-graph"),
        ],
    )
    def test_normalize(self, path, expected):
        assert normalize_path(path) == expected


class TestErrorMetrics:
    def test_admin_errors_are_counted(self, client: TestClient):
        client.get("/workspaces/ws_test/database/tables/ghost/schema")
        text = client.get("/metrics").text
        error_lines = [line for line in text.splitlines() if line.startswith("dbadmin_errors_total{")]
        assert any(
            'type="NotFound"' in line
            and 'endpoint="/workspaces/{workspace_id}/database/tables/{table_name}/schema"' in line
            for line in error_lines
        )
