import pytest

from analytics_agent.agent.registry import ToolRegistry
from analytics_agent.agent.tools import register_builtin_tools
from analytics_agent.config import QueryConfig, ShaperConfig
from analytics_agent.errors import RejectedQuery
from analytics_agent.query.guard import QuerySafetyGuard
from analytics_agent.shaping.shaper import NO_RESULTS, ResultShaper
from analytics_agent.types import TabularResult


@pytest.fixture
def registry(fake_store) -> ToolRegistry:
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        QuerySafetyGuard(fake_store, QueryConfig(timeout_seconds=30.0)),
        ResultShaper(ShaperConfig()),
    )
    return registry


def test_builtin_tools_registered(registry) -> None:
    assert [spec.name for spec in registry.specs()] == [
        "list_databases",
        "list_tables",
        "run_select_query",
    ]
    definitions = {d.name: d for d in registry.definitions()}
    assert definitions["list_databases"].parameters == []
    assert [p.name for p in definitions["run_select_query"].parameters if p.required] == ["query"]


def test_list_databases(registry, fake_store) -> None:
    fake_store.responses["system.databases"] = TabularResult(
        columns=["name"], rows=[["analytics"], ["default"], ["system"]]
    )

    payload = registry.execute("list_databases", {})

    assert payload == {"databases": ["analytics", "default", "system"], "count": 3}
    assert fake_store.calls[0]["readonly"] is True


def test_list_tables_includes_schema_and_row_counts(registry, fake_store) -> None:
    fake_store.responses["FROM system.tables"] = TabularResult(
        columns=["name", "engine", "comment", "total_rows"],
        rows=[
            ["events", "MergeTree", "Raw events", 1200],
            ["events_view", "View", "", None],
            ["sessions", "Merge", "", None],
        ],
    )
    fake_store.responses["FROM system.columns"] = TabularResult(
        columns=["table", "name", "type", "comment"],
        rows=[
            ["events", "id", "UInt64", "Event id"],
            ["events", "ts", "DateTime", ""],
            ["sessions", "id", "UInt64", ""],
        ],
    )
    fake_store.responses["count()"] = TabularResult(columns=["count"], rows=[[42]])

    payload = registry.execute("list_tables", {"database": "analytics", "like": "e%"})

    assert payload["count"] == 3
    events, view, sessions = payload["tables"]
    assert events == {
        "database": "analytics",
        "name": "events",
        "engine": "MergeTree",
        "comment": "Raw events",
        "row_count": 1200,
        "column_count": 2,
        "columns": [
            {"name": "id", "type": "UInt64", "comment": "Event id"},
            {"name": "ts", "type": "DateTime", "comment": None},
        ],
    }
    assert view["row_count"] is None
    assert view["column_count"] == 0
    assert sessions["row_count"] == 42

    queries = [call["query"] for call in fake_store.calls]
    assert "database = 'analytics' AND name LIKE 'e%'" in queries[0]
    assert "create_table_query" not in queries[0]
    assert queries[-1] == "SELECT count() AS count FROM `analytics`.`sessions`"


def test_list_tables_can_include_ddl(registry, fake_store) -> None:
    fake_store.responses["FROM system.tables"] = TabularResult(
        columns=["name", "engine", "comment", "total_rows", "create_table_query"],
        rows=[["events", "MergeTree", "", 5, "CREATE TABLE analytics.events (id UInt64)"]],
    )

    payload = registry.execute("list_tables", {"database": "analytics", "include_ddl": True})

    assert payload["tables"][0]["create_table_query"] == "CREATE TABLE analytics.events (id UInt64)"
    assert payload["tables"][0]["columns"] == []


def test_list_tables_quotes_database_literal(registry, fake_store) -> None:
    registry.execute("list_tables", {"database": "x' OR 1=1 --"})

    assert "database = 'x\\' OR 1=1 --'" in fake_store.calls[0]["query"]


def test_run_select_query_shapes_result(registry, fake_store) -> None:
    fake_store.responses["FROM analytics.orders"] = TabularResult(
        columns=["region", "total"], rows=[["EU", 10], ["US", 20]]
    )

    payload = registry.execute(
        "run_select_query",
        {"query": "SELECT region, sum(amount) AS total FROM analytics.orders GROUP BY region"},
    )

    assert payload == {"columns": ["region", "total"], "rows": [["EU", 10], ["US", 20]], "count": 2}
    assert fake_store.calls[0]["timeout_seconds"] == 30.0


def test_run_select_query_empty_result(registry) -> None:
    assert registry.execute("run_select_query", {"query": "SELECT 1 WHERE 0"}) == NO_RESULTS


def test_run_select_query_rejects_writes(registry, fake_store) -> None:
    with pytest.raises(RejectedQuery):
        registry.execute("run_select_query", {"query": "DROP TABLE analytics.orders"})
    assert fake_store.calls == []
