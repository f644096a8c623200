"""LangChain chat-model adapter for the provider contract."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from analytics_agent.agent.registry import ToolDefinition
from analytics_agent.errors import ProviderError
from analytics_agent.providers.base import ProviderResponse
from analytics_agent.types import Message, Role, TokenUsage, ToolCallRequest

logger = logging.getLogger(__name__)


class LangChainChatAdapter:
    """Drives any LangChain chat model that supports `bind_tools`.

    In production this is `ChatOpenAI` pointed at OpenAI or an
    OpenAI-compatible gateway such as OpenRouter. Retries are left to the
    caller: the wrapped model should be built with `max_retries=0` and an
    explicit `timeout`.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def chat(self, messages: list[Message], tools: list[ToolDefinition]) -> ProviderResponse:
        try:
            model = (
                self.llm.bind_tools([tool.to_function_schema() for tool in tools])
                if tools
                else self.llm
            )
            response = model.invoke(to_langchain_messages(messages))
        except Exception as exc:
            kind = classify_provider_error(exc)
            logger.error("Provider call failed (%s): %s", kind, exc)
            raise ProviderError(f"{type(exc).__name__}: {exc}", kind=kind) from exc

        tool_calls = [
            ToolCallRequest(
                name=str(call.get("name") or ""),
                arguments=dict(call.get("args") or {}),
                call_id=_call_id(call),
            )
            for call in getattr(response, "tool_calls", None) or []
        ]
        # Calls whose arguments were not valid JSON still go to the executor,
        # which reports them back to the model as invalid arguments.
        for call in getattr(response, "invalid_tool_calls", None) or []:
            logger.warning("Model sent unparseable arguments for %s", call.get("name"))
            tool_calls.append(
                ToolCallRequest(
                    name=str(call.get("name") or ""),
                    arguments={},
                    call_id=_call_id(call),
                    raw_arguments=str(call.get("args") or ""),
                    parse_error=str(call.get("error") or "malformed JSON"),
                )
            )

        return ProviderResponse(
            content=_text_content(getattr(response, "content", "")),
            tool_calls=tool_calls,
            usage=_usage(response),
        )


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        if message.role == Role.SYSTEM:
            converted.append(SystemMessage(content=message.content))
        elif message.role == Role.USER:
            converted.append(HumanMessage(content=message.content))
        elif message.role == Role.ASSISTANT:
            converted.append(
                AIMessage(
                    content=message.content,
                    tool_calls=[
                        {
                            "name": call.name,
                            "args": call.arguments,
                            "id": call.call_id,
                            "type": "tool_call",
                        }
                        for call in message.tool_calls
                        if call.parse_error is None
                    ],
                    invalid_tool_calls=[
                        {
                            "name": call.name,
                            "args": call.raw_arguments,
                            "id": call.call_id,
                            "error": call.parse_error,
                            "type": "invalid_tool_call",
                        }
                        for call in message.tool_calls
                        if call.parse_error is not None
                    ],
                )
            )
        else:
            converted.append(
                ToolMessage(
                    content=message.content,
                    tool_call_id=message.tool_call_id or "",
                    name=message.name,
                )
            )
    return converted


def classify_provider_error(exc: BaseException) -> str:
    status = getattr(exc, "status_code", None)
    if status is None:
        status = getattr(getattr(exc, "response", None), "status_code", None)
    text = str(exc).lower()

    if status == 429 or "rate limit" in text or "rate_limit" in text:
        return "rate_limited"
    if status in (503, 529) or "overloaded" in text or "529" in text:
        return "overloaded"
    if isinstance(exc, TimeoutError) or "timeout" in type(exc).__name__.lower():
        return "timeout"
    return "provider_error"


def _call_id(call: dict[str, Any]) -> str:
    return str(call.get("id") or f"call-{uuid.uuid4().hex[:12]}")


def _text_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    return str(content or "")


def _usage(response: Any) -> TokenUsage:
    metadata = getattr(response, "usage_metadata", None)
    if metadata:
        return TokenUsage(
            input_tokens=int(metadata.get("input_tokens", 0) or 0),
            output_tokens=int(metadata.get("output_tokens", 0) or 0),
        )
    token_usage = (getattr(response, "response_metadata", None) or {}).get("token_usage") or {}
    return TokenUsage(
        input_tokens=int(token_usage.get("prompt_tokens", 0) or 0),
        output_tokens=int(token_usage.get("completion_tokens", 0) or 0),
    )
