from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from analytics_agent.agent.registry import ToolDefinition
from analytics_agent.errors import QueryFailed
from analytics_agent.providers.base import ProviderResponse
from analytics_agent.types import Message, TabularResult, TokenUsage, ToolCallRequest


@dataclass
class FakeStore:
    """Answers queries by the first registered fragment they contain."""

    responses: dict[str, TabularResult] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)
    calls: list[dict[str, Any]] = field(default_factory=list)

    def select(
        self,
        query: str,
        *,
        database: str | None = None,
        readonly: bool = True,
        timeout_seconds: float | None = None,
    ) -> TabularResult:
        self.calls.append(
            {
                "query": query,
                "database": database,
                "readonly": readonly,
                "timeout_seconds": timeout_seconds,
            }
        )
        for fragment, message in self.failures.items():
            if fragment in query:
                raise QueryFailed(message)
        for fragment, result in self.responses.items():
            if fragment in query:
                return result
        return TabularResult(columns=[], rows=[])


class ScriptedProvider:
    """Replays canned turns and records every transcript it receives."""

    def __init__(self, turns: list[ProviderResponse | Exception]) -> None:
        self.turns = list(turns)
        self.transcripts: list[list[Message]] = []
        self.tools: list[list[ToolDefinition]] = []

    def chat(self, messages: list[Message], tools: list[ToolDefinition]) -> ProviderResponse:
        self.transcripts.append(list(messages))
        self.tools.append(list(tools))
        turn = self.turns.pop(0)
        if isinstance(turn, Exception):
            raise turn
        return turn


class AlwaysToolCallingProvider:
    """Never answers; requests `per_turn` queries on every turn."""

    def __init__(self, per_turn: int = 1) -> None:
        self.per_turn = per_turn
        self.turns = 0

    def chat(self, messages: list[Message], tools: list[ToolDefinition]) -> ProviderResponse:
        self.turns += 1
        return ProviderResponse(
            content="",
            tool_calls=[
                ToolCallRequest(
                    name="run_select_query",
                    arguments={"query": "SELECT 1"},
                    call_id=f"call-{self.turns}-{index}",
                )
                for index in range(self.per_turn)
            ],
            usage=TokenUsage(input_tokens=10, output_tokens=2),
        )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()
