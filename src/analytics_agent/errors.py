"""Error taxonomy for tool execution and the agent loop."""

from __future__ import annotations


class AgentError(Exception):
    """Base class for all analytics agent errors."""

    kind = "agent_error"


class ToolError(AgentError):
    """A tool-level failure that is reported back to the model as data."""

    kind = "tool_error"


class RejectedQuery(ToolError):
    """The statement failed the safety check and was never executed."""

    kind = "rejected_query"


class QueryFailed(ToolError):
    """The store rejected or timed out an allowed statement."""

    kind = "query_failed"


class ToolNotFound(ToolError):
    kind = "tool_not_found"


class InvalidArguments(ToolError):
    kind = "invalid_arguments"


class ProviderError(AgentError):
    """The model backend failed; terminates the loop as `failed`."""

    kind = "provider_error"

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class InstructionLeak(ProviderError):
    """The final answer echoed protected operating instructions."""

    kind = "instruction_leak"
