"""Built-in tool implementations for the analytics agent."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from analytics_agent.agent.registry import ToolRegistry, ToolSpec
from analytics_agent.query.guard import QuerySafetyGuard, quote_identifier, quote_string
from analytics_agent.shaping.shaper import ResultShaper
from analytics_agent.types import QueryRequest

_UNCOUNTED_ENGINES = frozenset({"View", "LiveView", "WindowView"})


class ListDatabasesInput(BaseModel):
    pass


class ListTablesInput(BaseModel):
    database: str = Field(min_length=1, description="Database name.")
    like: str | None = Field(
        default=None, description="Only tables whose name matches this LIKE pattern."
    )
    include_ddl: bool = Field(
        default=False, description="Include the CREATE TABLE statement of each table."
    )


class RunSelectQueryInput(BaseModel):
    query: str = Field(min_length=1, description="ClickHouse SELECT query to run.")
    database: str | None = Field(
        default=None,
        description="Database to run against when the query does not qualify table names.",
    )


def register_builtin_tools(
    registry: ToolRegistry,
    guard: QuerySafetyGuard,
    shaper: ResultShaper,
) -> None:
    """Register the default tool set used by the orchestrator.

    Tools:
    - `list_databases`: names of the databases in the store.
    - `list_tables`: tables of one database with comments, row counts and
      column schema.
    - `run_select_query`: one validated, read-only, budget-shaped query.
    """

    def _list_databases(_: ListDatabasesInput) -> dict[str, Any]:
        result = guard.run(QueryRequest("SELECT name FROM system.databases ORDER BY name"))
        return shaper.shape_listing("databases", [row[0] for row in result.rows])

    def _list_tables(input_data: ListTablesInput) -> dict[str, Any]:
        database = input_data.database
        db_literal = quote_string(database)

        select_list = "name, engine, comment, total_rows"
        if input_data.include_ddl:
            select_list += ", create_table_query"
        tables_sql = f"SELECT {select_list} FROM system.tables WHERE database = {db_literal}"
        if input_data.like:
            tables_sql += f" AND name LIKE {quote_string(input_data.like)}"
        tables_sql += " ORDER BY name"
        tables = guard.run(QueryRequest(tables_sql)).records()

        columns = guard.run(
            QueryRequest(
                "SELECT table, name, type, comment FROM system.columns "
                f"WHERE database = {db_literal} ORDER BY table, position"
            )
        )
        columns_by_table: dict[str, list[dict[str, Any]]] = {}
        for table, name, column_type, comment in columns.rows:
            columns_by_table.setdefault(table, []).append(
                {"name": name, "type": column_type, "comment": comment or None}
            )

        items: list[dict[str, Any]] = []
        for record in tables:
            name = record["name"]
            table_columns = columns_by_table.get(name, [])
            item: dict[str, Any] = {
                "database": database,
                "name": name,
                "engine": record["engine"],
                "comment": record["comment"] or None,
                "row_count": _row_count(guard, database, record),
                "column_count": len(table_columns),
                "columns": table_columns,
            }
            if input_data.include_ddl:
                item["create_table_query"] = record.get("create_table_query")
            items.append(item)

        return shaper.shape_listing("tables", items)

    def _run_select_query(input_data: RunSelectQueryInput) -> dict[str, Any]:
        result = guard.run(
            QueryRequest(query=input_data.query, database=input_data.database)
        )
        return shaper.shape(result)

    registry.register(
        ToolSpec(
            name="list_databases",
            description="List available ClickHouse databases.",
            args_schema=ListDatabasesInput,
            handler=_list_databases,
            tags=["schema"],
        )
    )
    registry.register(
        ToolSpec(
            name="list_tables",
            description=(
                "List ClickHouse tables in a database, including schema, comment, "
                "row count, and column count."
            ),
            args_schema=ListTablesInput,
            handler=_list_tables,
            tags=["schema"],
        )
    )
    registry.register(
        ToolSpec(
            name="run_select_query",
            description="Run a SELECT query in a ClickHouse database.",
            args_schema=RunSelectQueryInput,
            handler=_run_select_query,
            tags=["query"],
        )
    )


def _row_count(guard: QuerySafetyGuard, database: str, record: dict[str, Any]) -> int | None:
    if record.get("total_rows") is not None:
        return int(record["total_rows"])
    if record.get("engine") in _UNCOUNTED_ENGINES:
        return None
    result = guard.run(
        QueryRequest(
            f"SELECT count() AS count FROM {quote_identifier(database)}."
            f"{quote_identifier(record['name'])}"
        )
    )
    return int(result.rows[0][0]) if result.rows else 0
