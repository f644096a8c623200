"""Statement validation and read-only execution of model-written queries."""

from __future__ import annotations

import logging
import re

from analytics_agent.config import QueryConfig
from analytics_agent.errors import RejectedQuery
from analytics_agent.query.store import AnalyticsStore
from analytics_agent.types import QueryPolicy, QueryRequest, TabularResult

logger = logging.getLogger(__name__)

_LEADING_KEYWORD = re.compile(r"^([A-Za-z_]+)")
_TRAILING_TERMINATOR = re.compile(r";\s*$")
# A SETTINGS clause is a `name = value` list; `system.settings` and columns
# named `settings` are not clauses.
_PROTECTED_SETTINGS = re.compile(
    r"(?<![.\w])SETTINGS\s+(?:\w+\s*=\s*[^,=]+?\s*,\s*)*"
    r"(readonly|max_execution_time|allow_ddl)\s*=",
    flags=re.IGNORECASE,
)

_ALLOWED_KEYWORDS: dict[QueryPolicy, frozenset[str]] = {
    QueryPolicy.SELECT_ONLY: frozenset({"SELECT"}),
    QueryPolicy.ALLOW_CTE: frozenset({"SELECT", "WITH"}),
}


def quote_identifier(name: str) -> str:
    """Backtick-quote a database/table identifier."""
    return "`" + name.replace("`", "``") + "`"


def quote_string(value: str) -> str:
    """Single-quote a string literal for ClickHouse."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


class QuerySafetyGuard:
    """Validates statements and runs them through a read-only session.

    The default policy accepts only statements that start with `SELECT`.
    `QueryPolicy.ALLOW_CTE` additionally admits `WITH ... SELECT` and must be
    chosen explicitly.
    """

    def __init__(self, store: AnalyticsStore, config: QueryConfig | None = None) -> None:
        self.store = store
        self.config = config or QueryConfig()

    def validate(self, query: str) -> str:
        """Return the statement without its trailing `;` or raise `RejectedQuery`."""

        statement = (query or "").strip()
        if not statement:
            raise RejectedQuery("Empty query")

        match = _LEADING_KEYWORD.match(statement)
        keyword = match.group(1).upper() if match else ""
        allowed = _ALLOWED_KEYWORDS[self.config.policy]
        if keyword not in allowed:
            names = " or ".join(sorted(allowed))
            raise RejectedQuery(
                f"Only {names} statements are allowed, got {keyword or statement[:20]!r}"
            )

        statement = _TRAILING_TERMINATOR.sub("", statement).rstrip()
        code = _strip_literals_and_comments(statement)
        if ";" in code:
            raise RejectedQuery("Multiple statements are not allowed")
        if _PROTECTED_SETTINGS.search(code):
            raise RejectedQuery("Queries may not change session restrictions")
        return statement

    def run(self, request: QueryRequest) -> TabularResult:
        try:
            statement = self.validate(request.query)
        except RejectedQuery as exc:
            logger.warning("Rejected query: %s", exc)
            raise

        logger.info(
            "Running query on %s: %s",
            request.database or "<default>",
            _preview(statement),
        )
        return self.store.select(
            statement,
            database=request.database,
            readonly=True,
            timeout_seconds=self.config.timeout_seconds,
        )


def _strip_literals_and_comments(sql: str) -> str:
    """Blank out string literals, quoted identifiers and comments.

    What remains is only the code the server will parse, so a `;` or keyword
    hidden inside a literal is not mistaken for a real one.
    """

    out: list[str] = []
    i = 0
    length = len(sql)
    while i < length:
        char = sql[i]
        if char in ("'", '"', "`"):
            quote = char
            i += 1
            while i < length:
                if sql[i] == "\\":
                    i += 2
                    continue
                if sql[i] == quote:
                    if i + 1 < length and sql[i + 1] == quote:
                        i += 2
                        continue
                    break
                i += 1
            i += 1
            out.append(" ")
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = length if end == -1 else end
            out.append(" ")
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = length if end == -1 else end + 2
            out.append(" ")
        else:
            out.append(char)
            i += 1
    return "".join(out)


def _preview(statement: str, limit: int = 200) -> str:
    flat = " ".join(statement.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
