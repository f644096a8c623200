"""Token-budgeted shaping of tabular tool results."""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Callable
from typing import Any

from analytics_agent.config import ShaperConfig
from analytics_agent.types import CHARS_PER_TOKEN, TabularResult, TokenBudget

logger = logging.getLogger(__name__)

NO_RESULTS: dict[str, str] = {
    "result": "no_results",
    "comment": "No results found for this query",
}

_ELLIPSIS = "..."
_MAX_REDUCTION_ROUNDS = 40
_REDUCTION_STEP = 0.75


def serialize(payload: Any) -> str:
    """Compact JSON form that is both sent to the model and measured."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def estimate_token_count(text: str) -> int:
    """Over-approximate token count: one token per four characters."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncation_note(kept: int, total: int, max_tokens: int, unit: str = "rows") -> str:
    return (
        f"Results truncated to fit within {max_tokens} token limit. "
        f"Showing {kept} of {total} {unit}."
    )


class ResultShaper:
    """Converts query results into a compact payload bounded by a token budget.

    Shapes:
    - no rows: the fixed `NO_RESULTS` marker, so an empty answer is never
      confused with a result that was truncated down to nothing;
    - one row: a flat `{column: value}` record, unless column names repeat;
    - many rows: `{"columns": [...], "rows": [[...]], "count": N}`, which
      states each column name once instead of once per row.

    When the payload does not fit, rows are kept in their original order up
    to the last one that fits and a `_note` reports `kept of total`. If not
    even the first row fits, its string fields are clipped proportionally to
    the overflow and the payload is flagged `_truncated`.

    A slice of the budget (`envelope_reserve_chars`) is held back for the
    fields the tool executor adds around the payload.
    """

    def __init__(self, config: ShaperConfig | None = None) -> None:
        self.config = config or ShaperConfig()

    def shape(
        self,
        result: TabularResult,
        budget: TokenBudget | int | None = None,
    ) -> dict[str, Any]:
        token_budget = self._budget(budget)
        limit = self._char_limit(token_budget)

        if not result.rows:
            return dict(NO_RESULTS)
        # Repeated column names (joins) would collide as record keys.
        if len(result.rows) == 1 and len(set(result.columns)) == len(result.columns):
            return self._shape_single(result, token_budget, limit)

        payload: dict[str, Any] = {
            "columns": list(result.columns),
            "rows": [list(row) for row in result.rows],
            "count": len(result.rows),
        }
        if len(serialize(payload)) <= limit:
            return payload
        return self._truncate_rows(result, token_budget, limit)

    def shape_listing(
        self,
        key: str,
        items: list[Any],
        budget: TokenBudget | int | None = None,
    ) -> dict[str, Any]:
        """Apply the prefix policy to a list of nested records."""

        token_budget = self._budget(budget)
        limit = self._char_limit(token_budget)
        payload: dict[str, Any] = {key: items, "count": len(items)}
        if len(serialize(payload)) <= limit:
            return payload

        total = len(items)
        widest_note = truncation_note(total, total, token_budget.max_tokens, unit=key)
        used = len(serialize({key: [], "count": total, "_note": widest_note}))
        kept = _fit_prefix(items, used, limit)

        if not kept:
            note = truncation_note(0, total, token_budget.max_tokens, unit=key)
            preview = serialize(items[0])

            def _render(values: list[Any]) -> dict[str, Any]:
                return {
                    key: [],
                    "count": 0,
                    "_truncated": True,
                    "_preview": values[0],
                    "_note": note,
                }

            clipped = _reduce_values([preview], limit, lambda v: serialize(_render(v)))
            logger.info("Listing %r reduced to a preview of its first entry", key)
            return _render(clipped)

        logger.info(
            "Listing %r truncated from %d to %d entries (budget %d tokens)",
            key,
            total,
            len(kept),
            token_budget.max_tokens,
        )
        return {
            key: kept,
            "count": len(kept),
            "_note": truncation_note(len(kept), total, token_budget.max_tokens, unit=key),
        }

    def _shape_single(
        self, result: TabularResult, budget: TokenBudget, limit: int
    ) -> dict[str, Any]:
        columns = result.columns
        record = dict(zip(columns, result.rows[0], strict=True))
        if len(serialize(record)) <= limit:
            return record

        def _render(values: list[Any]) -> dict[str, Any]:
            return {**dict(zip(columns, values, strict=True)), "_truncated": True}

        values = _reduce_values(result.rows[0], limit, lambda v: serialize(_render(v)))
        logger.info("Single row clipped to fit %d tokens", budget.max_tokens)
        return _render(values)

    def _truncate_rows(
        self, result: TabularResult, budget: TokenBudget, limit: int
    ) -> dict[str, Any]:
        columns = list(result.columns)
        total = len(result.rows)

        # The note and count only shrink once `kept < total`, so measuring
        # with their widest form keeps the running size an upper bound.
        widest_note = truncation_note(total, total, budget.max_tokens)
        used = len(
            serialize({"columns": columns, "rows": [], "count": total, "_note": widest_note})
        )
        kept = _fit_prefix([list(row) for row in result.rows], used, limit)

        if not kept:
            note = truncation_note(1, total, budget.max_tokens)

            def _render(values: list[Any]) -> dict[str, Any]:
                return {
                    "columns": columns,
                    "rows": [values],
                    "count": 1,
                    "_truncated": True,
                    "_note": note,
                }

            values = _reduce_values(result.rows[0], limit, lambda v: serialize(_render(v)))
            logger.info(
                "No complete row fits %d tokens; returning one clipped row of %d",
                budget.max_tokens,
                total,
            )
            return _render(values)

        logger.info(
            "Result truncated from %d to %d rows (budget %d tokens)",
            total,
            len(kept),
            budget.max_tokens,
        )
        return {
            "columns": columns,
            "rows": kept,
            "count": len(kept),
            "_note": truncation_note(len(kept), total, budget.max_tokens),
        }

    def _budget(self, budget: TokenBudget | int | None) -> TokenBudget:
        if budget is None:
            return TokenBudget(self.config.max_tokens)
        if isinstance(budget, int):
            return TokenBudget(budget)
        return budget

    def _char_limit(self, budget: TokenBudget) -> int:
        reserve = min(self.config.envelope_reserve_chars, budget.char_limit // 2)
        return budget.char_limit - reserve


def _fit_prefix(items: list[Any], used: int, limit: int) -> list[Any]:
    kept: list[Any] = []
    for item in items:
        item_chars = len(serialize(item)) + (1 if kept else 0)
        if used + item_chars > limit:
            break
        kept.append(item)
        used += item_chars
    return kept


def _reduce_values(
    values: list[Any], limit: int, render: Callable[[list[Any]], str]
) -> list[Any]:
    """Clip string fields proportionally until the rendered payload fits.

    Each round clips the original values with a tighter ratio, so the result
    never depends on earlier rounds. Non-string values are kept as they are;
    if the payload still does not fit with every string emptied, that
    smallest form is returned.
    """

    original = list(values)
    size = len(render(original))
    if size <= limit:
        return original

    ratio = limit / size
    for _ in range(_MAX_REDUCTION_ROUNDS):
        candidate = [_clip(value, ratio) for value in original]
        if len(render(candidate)) <= limit:
            return candidate
        ratio *= _REDUCTION_STEP
    return [_clip(value, 0.0) for value in original]


def _clip(value: Any, ratio: float) -> Any:
    if not isinstance(value, str):
        return value
    keep = int(len(value) * ratio)
    if keep == 0:
        return ""
    if keep + len(_ELLIPSIS) >= len(value):
        return value
    return value[:keep] + _ELLIPSIS
