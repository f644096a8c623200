"""Analytics store contract and the ClickHouse HTTP adapter."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from analytics_agent.errors import QueryFailed
from analytics_agent.types import TabularResult

logger = logging.getLogger(__name__)


class AnalyticsStore(Protocol):
    """Minimal read contract the query tools depend on."""

    def select(
        self,
        query: str,
        *,
        database: str | None = None,
        readonly: bool = True,
        timeout_seconds: float | None = None,
    ) -> TabularResult:
        """Run one statement and return its rows."""


class ClickHouseHttpStore:
    """Talks to ClickHouse over its HTTP interface.

    Every call opens its own client, so nothing is pooled or shared between
    tool invocations. Read-only mode and the execution timeout are sent as
    query settings, which makes the server itself refuse writes and stop
    long-running statements.
    """

    def __init__(
        self,
        *,
        url: str,
        username: str = "default",
        password: str = "",
        database: str | None = None,
        connect_timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.username = username
        self.password = password
        self.database = database
        self.connect_timeout = connect_timeout
        self._transport = transport

    def select(
        self,
        query: str,
        *,
        database: str | None = None,
        readonly: bool = True,
        timeout_seconds: float | None = None,
    ) -> TabularResult:
        params: dict[str, str] = {
            "default_format": "JSONCompact",
            "output_format_json_quote_64bit_integers": "0",
        }
        if readonly:
            params["readonly"] = "1"
        if timeout_seconds is not None:
            params["max_execution_time"] = str(max(1, int(timeout_seconds)))
        target_database = database or self.database
        if target_database:
            params["database"] = target_database

        # The client timeout leaves the server room to report its own timeout.
        read_timeout = (timeout_seconds or 30.0) + 5.0
        timeout = httpx.Timeout(read_timeout, connect=self.connect_timeout)

        try:
            with httpx.Client(
                base_url=self.url,
                auth=(self.username, self.password),
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = client.post("/", params=params, content=query.encode("utf-8"))
        except httpx.TimeoutException as exc:
            raise QueryFailed(
                f"Query timed out after {timeout_seconds or read_timeout:g} seconds"
            ) from exc
        except httpx.HTTPError as exc:
            raise QueryFailed(f"Store unreachable: {exc}") from exc

        if response.status_code >= 400:
            raise QueryFailed(response.text.strip() or f"HTTP {response.status_code}")

        return _parse_json_compact(response)


def _parse_json_compact(response: httpx.Response) -> TabularResult:
    try:
        body: dict[str, Any] = response.json()
    except ValueError as exc:
        raise QueryFailed("Store returned a non-JSON response") from exc

    meta = body.get("meta")
    data = body.get("data")
    if not isinstance(meta, list) or not isinstance(data, list):
        raise QueryFailed("Store response is missing 'meta' or 'data'")

    columns = [str(column.get("name", "")) for column in meta]
    try:
        return TabularResult(columns=columns, rows=[list(row) for row in data])
    except ValueError as exc:
        raise QueryFailed(f"Malformed result set: {exc}") from exc
