import json

from pydantic import BaseModel, Field

from analytics_agent.agent.executor import ToolExecutor
from analytics_agent.agent.registry import ToolRegistry, ToolSpec
from analytics_agent.errors import QueryFailed, RejectedQuery
from analytics_agent.types import ToolCallRequest


class LookupInput(BaseModel):
    key: str = Field(min_length=1)
    limit: int = 5


def _registry() -> ToolRegistry:
    def _lookup(data: LookupInput) -> dict:
        if data.key == "reject":
            raise RejectedQuery("Only SELECT statements are allowed, got 'DROP'")
        if data.key == "fail":
            raise QueryFailed("Code: 60. Table db.missing does not exist. " + "x" * 500)
        return {"key": data.key, "limit": data.limit}

    registry = ToolRegistry()
    registry.register(
        ToolSpec(name="lookup", description="lookup", args_schema=LookupInput, handler=_lookup)
    )
    return registry


def _call(name: str, arguments: dict, call_id: str = "c1") -> ToolCallRequest:
    return ToolCallRequest(name=name, arguments=arguments, call_id=call_id)


def test_successful_call_carries_counter() -> None:
    executor = ToolExecutor(_registry())

    result = executor.run(_call("lookup", {"key": "a"}))

    assert result.ok
    assert result.to_dict() == {"key": "a", "limit": 5, "toolCalls": 1}
    assert json.loads(result.to_text())["toolCalls"] == 1
    assert executor.calls == 1


def test_unknown_tool_increments_counter() -> None:
    executor = ToolExecutor(_registry())

    result = executor.run(_call("drop_everything", {}))

    assert not result.ok
    assert result.error_kind == "tool_not_found"
    assert executor.calls == 1
    assert result.to_dict() == {
        "status": "error",
        "kind": "tool_not_found",
        "message": "Unknown tool: drop_everything",
        "toolCalls": 1,
    }


def test_invalid_arguments_become_error_result() -> None:
    executor = ToolExecutor(_registry())

    missing = executor.run(_call("lookup", {}))
    wrong_type = executor.run(_call("lookup", {"key": "a", "limit": "many"}, call_id="c2"))

    assert missing.error_kind == "invalid_arguments"
    assert missing.error_message.startswith("Invalid arguments: key:")
    assert wrong_type.error_kind == "invalid_arguments"
    assert "limit" in wrong_type.error_message
    assert wrong_type.tool_calls == 2
    assert executor.calls == 2


def test_query_errors_are_reported_as_data() -> None:
    executor = ToolExecutor(_registry(), max_error_chars=100)

    rejected = executor.run(_call("lookup", {"key": "reject"}))
    failed = executor.run(_call("lookup", {"key": "fail"}))

    assert rejected.error_kind == "rejected_query"
    assert "Only SELECT" in rejected.error_message
    assert failed.error_kind == "query_failed"
    assert len(failed.error_message) == 100
    assert failed.error_message.endswith("...")
    assert failed.tool_calls == 2


def test_traces_recorded_for_every_call() -> None:
    executor = ToolExecutor(_registry())

    executor.run(_call("lookup", {"key": "a"}))
    executor.run(_call("lookup", {"key": "fail"}))

    assert [trace.name for trace in executor.traces] == ["lookup", "lookup"]
    assert [trace.ok for trace in executor.traces] == [True, False]
    assert executor.traces[0].input_payload == {"key": "a"}
    assert executor.traces[1].latency_ms >= 0.0


def test_unparseable_arguments_count_as_invalid_call() -> None:
    executor = ToolExecutor(_registry())
    call = ToolCallRequest(
        name="lookup",
        arguments={},
        call_id="c9",
        raw_arguments='{"key": "a',
        parse_error="Malformed args.",
    )

    result = executor.run(call)

    assert result.error_kind == "invalid_arguments"
    assert '{"key": "a' in result.error_message
    assert "Malformed args." in result.error_message
    assert result.tool_calls == 1
    assert executor.calls == 1
    assert executor.traces[0].input_payload == {"raw": '{"key": "a'}
