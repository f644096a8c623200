from analytics_agent.config import ShaperConfig
from analytics_agent.shaping.shaper import (
    NO_RESULTS,
    ResultShaper,
    estimate_token_count,
    serialize,
)
from analytics_agent.types import TabularResult, TokenBudget


def _rows(count: int) -> TabularResult:
    return TabularResult(
        columns=["id", "name", "amount"],
        rows=[[i, f"customer-{i}", i * 1.5] for i in range(count)],
    )


def test_token_estimate_rounds_up() -> None:
    assert estimate_token_count("") == 0
    assert estimate_token_count("abc") == 1
    assert estimate_token_count("abcd") == 1
    assert estimate_token_count("abcde") == 2


def test_zero_rows_returns_no_results_marker() -> None:
    payload = ResultShaper().shape(TabularResult(columns=["id"], rows=[]))

    assert payload == NO_RESULTS
    assert payload == {"result": "no_results", "comment": "No results found for this query"}


def test_single_row_is_flat_record() -> None:
    result = TabularResult(columns=["region", "revenue"], rows=[["EU", 1250.5]])

    assert ResultShaper().shape(result) == {"region": "EU", "revenue": 1250.5}


def test_many_rows_use_columnar_form() -> None:
    payload = ResultShaper().shape(_rows(3))

    assert payload == {
        "columns": ["id", "name", "amount"],
        "rows": [[0, "customer-0", 0.0], [1, "customer-1", 1.5], [2, "customer-2", 3.0]],
        "count": 3,
    }


def test_large_result_keeps_prefix_within_budget() -> None:
    result = _rows(10_000)
    payload = ResultShaper().shape(result, TokenBudget(2_000))

    kept = payload["count"]
    assert 0 < kept < 10_000
    assert payload["rows"] == result.rows[:kept]
    assert payload["_note"] == (
        "Results truncated to fit within 2000 token limit. "
        f"Showing {kept} of 10000 rows."
    )
    assert len(serialize(payload)) <= 2_000 * 4
    assert estimate_token_count(serialize(payload)) <= 2_000


def test_budget_leaves_room_for_envelope() -> None:
    shaper = ResultShaper(ShaperConfig(envelope_reserve_chars=100))
    payload = shaper.shape(_rows(500), 300)

    assert len(serialize(payload)) <= 300 * 4 - 100


def test_oversized_first_row_is_clipped_and_flagged() -> None:
    result = TabularResult(
        columns=["id", "body"],
        rows=[[1, "x" * 5_000], [2, "y" * 5_000]],
    )
    payload = ResultShaper().shape(result, 100)

    assert payload["_truncated"] is True
    assert payload["count"] == 1
    assert payload["rows"][0][0] == 1
    assert payload["rows"][0][1].startswith("xxx")
    assert payload["rows"][0][1].endswith("...")
    assert "Showing 1 of 2 rows" in payload["_note"]
    assert len(serialize(payload)) <= 100 * 4


def test_oversized_single_row_stays_flat() -> None:
    result = TabularResult(columns=["id", "body"], rows=[[7, "z" * 10_000]])
    payload = ResultShaper().shape(result, 50)

    assert payload["id"] == 7
    assert payload["_truncated"] is True
    assert len(payload["body"]) < 10_000
    assert len(serialize(payload)) <= 50 * 4


def test_shaping_is_idempotent_and_round_trips() -> None:
    shaper = ResultShaper()
    result = _rows(25)

    first = shaper.shape(result)
    rebuilt = TabularResult(columns=first["columns"], rows=first["rows"])

    assert shaper.shape(result) == first
    assert rebuilt.records() == result.records()
    assert shaper.shape(rebuilt) == first


def test_non_json_values_are_stringified() -> None:
    from datetime import date
    from decimal import Decimal

    result = TabularResult(columns=["day", "total"], rows=[[date(2024, 1, 2), Decimal("1.10")]])

    assert serialize(ResultShaper().shape(result)) == '{"day":"2024-01-02","total":"1.10"}'


def test_listing_truncates_entries_in_order() -> None:
    items = [{"name": f"table_{i}", "columns": [{"name": "id", "type": "UInt64"}]} for i in range(200)]
    payload = ResultShaper().shape_listing("tables", items, 500)

    kept = payload["count"]
    assert 0 < kept < 200
    assert payload["tables"] == items[:kept]
    assert payload["_note"].endswith(f"Showing {kept} of 200 tables.")
    assert len(serialize(payload)) <= 500 * 4


def test_listing_with_no_room_returns_preview() -> None:
    items = [{"name": "wide", "create_table_query": "CREATE TABLE " + "c " * 2_000}]
    payload = ResultShaper().shape_listing("tables", items, 80)

    assert payload["tables"] == []
    assert payload["count"] == 0
    assert payload["_truncated"] is True
    assert payload["_preview"].startswith('{"name":"wide"')
    assert len(serialize(payload)) <= 80 * 4


def test_small_listing_is_untouched() -> None:
    assert ResultShaper().shape_listing("databases", ["default", "system"]) == {
        "databases": ["default", "system"],
        "count": 2,
    }


def test_single_row_with_repeated_columns_keeps_every_value() -> None:
    result = TabularResult(columns=["x", "x", "y"], rows=[[1, 2, "a"]])

    payload = ResultShaper().shape(result)

    assert payload == {"columns": ["x", "x", "y"], "rows": [[1, 2, "a"]], "count": 1}
