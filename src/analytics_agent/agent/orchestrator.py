"""Bounded tool-calling loop that turns a question into an answer."""

from __future__ import annotations

import logging

from analytics_agent.agent.executor import ToolExecutor
from analytics_agent.agent.instructions import InstructionBuilder
from analytics_agent.agent.registry import ToolRegistry
from analytics_agent.config import AgentConfig, ShaperConfig
from analytics_agent.errors import InstructionLeak, ProviderError
from analytics_agent.obs.tracing import Timer, TraceStore
from analytics_agent.providers.base import ProviderAdapter
from analytics_agent.retrieval.augmenter import RetrievalAugmenter
from analytics_agent.types import AnswerStatus, Message, TokenUsage

logger = logging.getLogger(__name__)

OVERLOADED_TEXT = "The AI service is currently overloaded. Please try again in a few minutes."
RATE_LIMITED_TEXT = "Too many requests are being processed right now. Please try again shortly."
GENERAL_FAILURE_TEXT = "An error occurred while processing your request. Please try again later."
EMPTY_RESPONSE_KIND = "empty_response"
LEAK_TEXT = "The answer could not be delivered. Please rephrase your question."

_FAILURE_TEXTS = {
    "overloaded": OVERLOADED_TEXT,
    "rate_limited": RATE_LIMITED_TEXT,
    InstructionLeak.kind: LEAK_TEXT,
}


class AgentOrchestrator:
    """Runs one question through the provider and the registered tools.

    Shared collaborators (provider, registry, instruction builder, augmenter)
    are only read during `answer`; the transcript, the tool counter and the
    traces live in locals, so one orchestrator can serve parallel callers.
    """

    def __init__(
        self,
        *,
        provider: ProviderAdapter,
        registry: ToolRegistry,
        instructions: InstructionBuilder | None = None,
        augmenter: RetrievalAugmenter | None = None,
        config: AgentConfig | None = None,
        shaper_config: ShaperConfig | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.provider = provider
        self.registry = registry
        self.instructions = instructions or InstructionBuilder()
        self.augmenter = augmenter
        self.config = config or AgentConfig()
        self.max_error_chars = (shaper_config or ShaperConfig()).max_error_chars
        self.trace_store = trace_store

    def answer(self, question: Message | str, *, max_tool_calls: int | None = None) -> Message:
        """Answer `question`, dispatching at most `max_tool_calls` tools.

        Always returns a final assistant message; its `status` tells whether
        the model answered, the cap stopped the loop, or the provider failed.
        """

        user_message = question if isinstance(question, Message) else Message.user(question)
        limit = self.config.max_tool_calls if max_tool_calls is None else max_tool_calls
        if limit < 0:
            raise ValueError("max_tool_calls must not be negative")

        executor = ToolExecutor(self.registry, max_error_chars=self.max_error_chars)
        usage = TokenUsage()
        turns = 0

        with Timer() as timer:
            transcript = [
                Message.system(self._system_instructions(user_message.content, limit)),
                user_message,
            ]
            definitions = self.registry.definitions()
            while True:
                turns += 1
                logger.debug("Provider turn %d (%d tool calls so far)", turns, executor.calls)
                try:
                    response = self.provider.chat(transcript, definitions)
                except ProviderError as exc:
                    logger.error("Provider failed on turn %d: %s", turns, exc)
                    reply = self._failed(exc.kind)
                    break
                usage = usage + response.usage

                if not response.tool_calls:
                    if not response.content.strip():
                        logger.error("Provider returned neither text nor tool calls on turn %d", turns)
                        reply = self._failed(EMPTY_RESPONSE_KIND)
                        break
                    try:
                        self.instructions.check_leak(response.content)
                    except InstructionLeak as exc:
                        logger.warning("Discarding answer: %s", exc)
                        reply = self._failed(exc.kind)
                    else:
                        logger.info(
                            "Answered after %d provider turns and %d tool calls",
                            turns,
                            executor.calls,
                        )
                        reply = Message.assistant(response.content, status=AnswerStatus.ANSWERED)
                    break

                transcript.append(Message.assistant(response.content, tool_calls=response.tool_calls))
                reply = None
                for call in response.tool_calls:
                    if executor.calls >= limit:
                        logger.warning("Tool call limit of %d reached; stopping", limit)
                        reply = Message.assistant(
                            f"Stopped after reaching the limit of {limit} tool calls "
                            "without a final answer.",
                            status=AnswerStatus.CAPPED,
                        )
                        break
                    result = executor.run(call)
                    transcript.append(Message.tool_result(result.to_text(), call=call))
                if reply is not None:
                    break

        reply.usage = usage
        reply.metadata.update(tool_calls=executor.calls, provider_turns=turns)
        if self.trace_store is not None:
            record = self.trace_store.create_record(
                question=user_message.content,
                answer=reply.content,
                status=reply.status,
                tool_traces=executor.traces,
                tool_calls=executor.calls,
                provider_turns=turns,
                usage=usage,
                latency_ms=timer.elapsed_ms,
                error_kind=reply.metadata.get("error_kind"),
            )
            reply.metadata["trace_id"] = record.trace_id
        return reply

    def _system_instructions(self, question: str, limit: int) -> str:
        text = self.instructions.build(max_tool_calls=limit)
        if self.augmenter is not None:
            text = self.augmenter.prime(question, text)
        return text

    @staticmethod
    def _failed(kind: str) -> Message:
        reply = Message.assistant(
            _FAILURE_TEXTS.get(kind, GENERAL_FAILURE_TEXT), status=AnswerStatus.FAILED
        )
        reply.metadata["error_kind"] = kind
        return reply
