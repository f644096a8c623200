"""Per-invocation tool dispatch with a call counter."""

from __future__ import annotations

import logging
from time import perf_counter

from pydantic import ValidationError

from analytics_agent.agent.registry import ToolRegistry
from analytics_agent.errors import InvalidArguments, ToolError
from analytics_agent.types import ToolCallRequest, ToolCallResult, ToolTrace

logger = logging.getLogger(__name__)


class ToolExecutor:
    """Runs the model's tool calls for exactly one `answer` invocation.

    Every failure a tool can produce (unknown name, bad arguments, rejected
    or failed query) comes back as an error `ToolCallResult` so the model can
    read it and correct itself. `calls` goes up once per `run`, failed calls
    included, which is what the orchestrator's cap counts.
    """

    def __init__(self, registry: ToolRegistry, *, max_error_chars: int = 2_000) -> None:
        self.registry = registry
        self.max_error_chars = max_error_chars
        self.calls = 0
        self.traces: list[ToolTrace] = []

    def run(self, call: ToolCallRequest) -> ToolCallResult:
        self.calls += 1
        start = perf_counter()
        try:
            if call.parse_error is not None:
                raise InvalidArguments(
                    f"Invalid arguments: could not parse {call.raw_arguments!r} "
                    f"({call.parse_error})"
                )
            payload = self.registry.execute(call.name, call.arguments)
        except ValidationError as exc:
            result = self._failure(call, InvalidArguments.kind, _describe_validation(exc))
        except ToolError as exc:
            result = self._failure(call, exc.kind, str(exc))
        else:
            result = ToolCallResult(
                name=call.name,
                call_id=call.call_id,
                payload=payload,
                tool_calls=self.calls,
            )
        latency_ms = (perf_counter() - start) * 1000.0

        text = result.to_text()
        self.traces.append(
            ToolTrace(
                name=call.name,
                input_payload=(
                    call.arguments if call.parse_error is None else {"raw": call.raw_arguments}
                ),
                output_preview=text[:320],
                latency_ms=latency_ms,
                ok=result.ok,
            )
        )
        if result.ok:
            logger.info(
                "Tool %s #%d finished in %.1f ms (%d chars)",
                call.name,
                self.calls,
                latency_ms,
                len(text),
            )
        else:
            logger.warning(
                "Tool %s #%d failed with %s: %s",
                call.name,
                self.calls,
                result.error_kind,
                result.error_message,
            )
        return result

    def _failure(self, call: ToolCallRequest, kind: str, message: str) -> ToolCallResult:
        if len(message) > self.max_error_chars:
            message = message[: self.max_error_chars - 3] + "..."
        return ToolCallResult(
            name=call.name,
            call_id=call.call_id,
            error_kind=kind,
            error_message=message,
            tool_calls=self.calls,
        )


def _describe_validation(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(parts)
