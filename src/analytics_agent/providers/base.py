"""Provider-facing request/response contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from analytics_agent.agent.registry import ToolDefinition
from analytics_agent.types import Message, TokenUsage, ToolCallRequest


@dataclass(slots=True)
class ProviderResponse:
    """One model turn: either final text or tool-call requests."""

    content: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)


class ProviderAdapter(Protocol):
    """Swappable model backend.

    Implementations raise `ProviderError` for any backend failure; every
    other exception is treated as a bug.
    """

    def chat(self, messages: list[Message], tools: list[ToolDefinition]) -> ProviderResponse:
        """Send the transcript and tool definitions, return the model's turn."""
