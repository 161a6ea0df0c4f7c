from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import pytest

from seerdb import agent as agent_module
from seerdb.agent import AgentConfig, AgentError, DatabaseAgent, build_connection_string, run_query
from seerdb.database.errors import DatabaseConnectionError, DatabaseError
from seerdb.models import DatabaseConfig, DBType, QueryResult, TableInfo, TableType


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class FakeConnection:
    def __init__(self, config: DatabaseConfig, results: dict[str, QueryResult], *, fail_connect: bool = False) -> None:
        self.config = config
        self.type = config.type
        self.results = results
        self.fail_connect = fail_connect
        self.queries: list[tuple[str, list[Any]]] = []
        self.transactions: list[list[str]] = []
        self.closed = False

    async def connect(self) -> None:
        if self.fail_connect:
            raise DatabaseConnectionError("connection refused")

    async def query(self, sql: str, params: Sequence[Any] = ()) -> QueryResult:
        self.queries.append((sql, list(params)))
        for needle, result in self.results.items():
            if needle in sql:
                return result
        if "boom" in sql:
            raise DatabaseError("boom failed")
        return QueryResult()

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        await self.query(sql, params)

    async def transaction(self, statements: Sequence[str]) -> list[QueryResult]:
        if any("boom" in sql for sql in statements):
            raise DatabaseError("rolled back")
        self.transactions.append(list(statements))
        return [QueryResult(row_count=1) for _ in statements]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def connections(monkeypatch: pytest.MonkeyPatch) -> list[FakeConnection]:
    created: list[FakeConnection] = []
    results = {
        "information_schema.tables": QueryResult(
            rows=(
                {"table_schema": "public", "table_name": "orders", "table_type": "BASE TABLE"},
                {"table_schema": "public", "table_name": "recent_orders", "table_type": "VIEW"},
            )
        ),
        "FROM big": QueryResult(rows=tuple({"id": i} for i in range(1001)), row_count=1001, fields=("id",)),
    }

    def factory(config: DatabaseConfig) -> FakeConnection:
        connection = FakeConnection(config, results, fail_connect="unreachable" in config.connection_string)
        created.append(connection)
        return connection

    monkeypatch.setattr(agent_module, "create_database_connection", factory)
    return created


PG = {"type": "postgresql", "connection_string": "postgresql://localhost/app"}


def test_build_connection_string_from_parts() -> None:
    config = AgentConfig(type=DBType.POSTGRESQL, host="db", user="app user", password="p@ss", database="shop")

    assert build_connection_string(config) == "postgresql://app%20user:p%40ss@db:5432/shop"


def test_build_connection_string_defaults() -> None:
    assert build_connection_string(AgentConfig(type=DBType.MYSQL, user="root")) == "mysql://root@localhost:3306/"
    assert build_connection_string(AgentConfig(type=DBType.SQLITE, database="/tmp/app.db")) == "/tmp/app.db"
    assert build_connection_string(AgentConfig(type=DBType.SQLITE, connection_string="x.db", database="y.db")) == "x.db"


@pytest.mark.anyio
async def test_connect_uses_single_connection_pool(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()

    await agent.connect(PG)

    assert agent.is_connected()
    assert agent.config is not None and agent.config.type is DBType.POSTGRESQL
    (connection,) = connections
    assert connection.config.pool is not None
    assert connection.config.pool.max == 1


@pytest.mark.anyio
async def test_connect_failure_raises_agent_error(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()

    with pytest.raises(AgentError, match="Failed to connect to database: connection refused") as info:
        await agent.connect({"type": "postgresql", "connection_string": "postgresql://unreachable/app"})

    assert isinstance(info.value.__cause__, DatabaseConnectionError)
    assert not agent.is_connected()


@pytest.mark.anyio
async def test_operations_require_connection() -> None:
    agent = DatabaseAgent()

    with pytest.raises(AgentError, match="Not connected to database"):
        await agent.query("SELECT 1")
    with pytest.raises(AgentError, match="Not connected to database"):
        await agent.get_schema()


@pytest.mark.anyio
async def test_get_schema_lists_user_tables(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    schema = await agent.get_schema()

    assert schema.tables == (
        TableInfo("orders", "public", TableType.TABLE),
        TableInfo("recent_orders", "public", TableType.VIEW),
    )
    sql = connections[0].queries[0][0]
    assert "NOT IN ('pg_catalog', 'information_schema')" in sql


@pytest.mark.anyio
async def test_query_warns_about_unbounded_and_large_results(
    connections: list[FakeConnection], caplog: pytest.LogCaptureFixture
) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    with caplog.at_level(logging.WARNING, logger="seerdb.agent"):
        result = await agent.query("SELECT * FROM big")

    assert result.row_count == 1001
    assert result.columns == ("id",)
    assert result.duration_ms >= 0
    assert "Query may return unlimited results" in caplog.text
    assert "Query returned 1001 rows" in caplog.text


@pytest.mark.anyio
async def test_query_flags_destructive_statements(
    connections: list[FakeConnection], caplog: pytest.LogCaptureFixture
) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    with caplog.at_level(logging.WARNING, logger="seerdb.agent"):
        await agent.query("DELETE FROM orders")

    assert "Query appears to be destructive" in caplog.text
    assert "unlimited results" not in caplog.text


@pytest.mark.anyio
async def test_query_failure_wraps_driver_error(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    with pytest.raises(AgentError, match="Query failed: boom failed"):
        await agent.query("SELECT boom LIMIT 1")


@pytest.mark.anyio
async def test_get_table_data_caps_limit(
    connections: list[FakeConnection], caplog: pytest.LogCaptureFixture
) -> None:
    agent = DatabaseAgent()
    await agent.connect({"type": "mysql", "connection_string": "mysql://root@localhost/shop"})

    with caplog.at_level(logging.WARNING, logger="seerdb.agent"):
        await agent.get_table_data("orders", limit=5000, offset=10, where="total > 5", order_by="id DESC")

    sql = connections[0].queries[-1][0]
    assert sql == "SELECT * FROM orders WHERE total > 5 ORDER BY id DESC LIMIT 10, 1000"
    assert "Requested limit of 5000 reduced to 1000" in caplog.text
    assert "unlimited results" not in caplog.text


@pytest.mark.anyio
async def test_transaction_runs_all_statements(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    results = await agent.transaction(["UPDATE a SET x = 1", "UPDATE b SET y = 2"])

    assert [result.row_count for result in results] == [1, 1]
    assert connections[0].transactions == [["UPDATE a SET x = 1", "UPDATE b SET y = 2"]]


@pytest.mark.anyio
async def test_transaction_failure_raises(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    with pytest.raises(AgentError, match="Transaction failed: rolled back"):
        await agent.transaction(["UPDATE a SET x = 1", "boom"])


@pytest.mark.anyio
async def test_disconnect_closes_connection(connections: list[FakeConnection]) -> None:
    agent = DatabaseAgent()
    await agent.connect(PG)

    await agent.disconnect()
    await agent.disconnect()

    assert connections[0].closed
    assert not agent.is_connected()
    assert agent.config is None


@pytest.mark.anyio
async def test_run_query_disconnects_after_use(connections: list[FakeConnection]) -> None:
    result = await run_query(PG, "SELECT * FROM big LIMIT 2000")

    assert result.row_count == 1001
    assert connections[0].closed


@pytest.mark.anyio
async def test_agent_against_real_sqlite(tmp_path: Path) -> None:
    agent = DatabaseAgent()
    await agent.connect(AgentConfig(type=DBType.SQLITE, database=str(tmp_path / "agent.db")))
    try:
        await agent.transaction(
            [
                "CREATE TABLE notes (id INTEGER PRIMARY KEY, body TEXT)",
                "INSERT INTO notes (body) VALUES ('one')",
                "INSERT INTO notes (body) VALUES ('two')",
            ]
        )
        schema = await agent.get_schema()
        page = await agent.get_table_data("notes", limit=1, offset=1, order_by="id")
    finally:
        await agent.disconnect()

    assert [table.name for table in schema.tables] == ["notes"]
    assert page.rows == ({"id": 2, "body": "two"},)
