"""
Integration tests for the query gateway.

These tests run against a real PostgreSQL instance and verify that:
1. Pools open over an encrypted, read-only session
2. SELECT results are limited and writes are refused by both layers
3. Catalog operations return the expected shapes

Run with: RUN_INTEGRATION_TESTS=1 pytest tests/integration/
The server must accept SSL connections (sslmode=require).
"""

from __future__ import annotations

import os

import pytest

from query_gateway.domain.errors import ExecutionError, NotFoundError, RejectedError
from query_gateway.gateway import QueryGateway
from query_gateway.infrastructure.pool_manager import PoolManager
from query_gateway.query.executor import QueryExecutor
from query_gateway.registry import ResourceRegistry

MAX_ROWS = 5

pytestmark = pytest.mark.skipif(
    os.getenv("RUN_INTEGRATION_TESTS", "0") != "1",
    reason="Integration tests require RUN_INTEGRATION_TESTS=1 and reachable Postgres",
)


@pytest.fixture
def gateway(integration_records):
    registry = ResourceRegistry.from_records(integration_records)
    gateway = QueryGateway(
        registry,
        pool_manager=PoolManager(registry, pool_min=1, pool_max=2, query_timeout_ms=1_000),
        executor=QueryExecutor(max_rows=MAX_ROWS, query_timeout_ms=1_000),
    )
    yield gateway
    gateway.close()


class TestConnection:
    def test_connection_reports_identity(self, gateway, integration_records):
        result = gateway.test_connection()

        assert result.connected, result.error
        assert result.current_database == integration_records[0]["databases"][0]["name"]
        assert result.login_name == integration_records[0]["username"]

    def test_unknown_database_fails_without_raising(self, integration_records):
        records = [{**integration_records[0], "databases": []}]
        with QueryGateway(ResourceRegistry.from_records(records)) as gateway:
            result = gateway.test_connection("it", "definitely_missing_db")

        assert not result.connected
        assert "definitely_missing_db" in result.error


class TestQueries:
    def test_select_is_truncated(self, gateway):
        result = gateway.run_select("SELECT g FROM generate_series(1, 20) AS g")

        assert result.row_count == MAX_ROWS
        assert result.truncated
        assert result.rows[0] == (1,)

    def test_validator_rejects_writes(self, gateway):
        with pytest.raises(RejectedError):
            gateway.run_select("SELECT 1; CREATE TABLE gateway_scratch (id int)")

    def test_session_is_read_only(self, gateway):
        # Passes the lexical validator; the read-only session must still refuse it.
        with pytest.raises(ExecutionError, match="read-only transaction"):
            gateway.run_select("SELECT lo_create(0)")

    def test_statement_timeout(self, gateway):
        with pytest.raises(ExecutionError) as excinfo:
            gateway.run_select("SELECT pg_sleep(5)")

        assert excinfo.value.kind == "timeout"
        # The pool stays usable after a cancelled statement.
        assert gateway.run_select("SELECT 1").rows == [(1,)]


class TestCatalog:
    def test_list_tables_shape(self, gateway):
        for table in gateway.list_tables():
            assert {"schema_name", "table_name", "row_count", "size_mb"} <= set(table)

    def test_table_schema_missing_table(self, gateway):
        with pytest.raises(NotFoundError):
            gateway.get_table_schema(None, None, "public", "definitely_missing_table")

    def test_view_definition(self, gateway):
        definition = gateway.get_object_definition(None, None, "information_schema", "tables", "VIEW")

        assert "SELECT" in definition.definition.upper()
