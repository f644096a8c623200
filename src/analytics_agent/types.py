"""Shared domain models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from hashlib import sha1
from typing import Any

CHARS_PER_TOKEN = 4


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_RESULT = "tool_result"


class AnswerStatus(str, Enum):
    """Terminal state of one `answer` invocation."""

    ANSWERED = "answered"
    CAPPED = "capped"
    FAILED = "failed"


class QueryPolicy(str, Enum):
    """Which leading keywords the query guard accepts."""

    SELECT_ONLY = "select_only"
    ALLOW_CTE = "allow_cte"


@dataclass(slots=True)
class TokenUsage:
    """Provider-reported token usage, summable across turns."""

    input_tokens: int = 0
    output_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(slots=True)
class ToolCallRequest:
    """A tool invocation requested by the model.

    When the model's arguments could not be parsed, `arguments` is empty,
    `raw_arguments` keeps the text as sent and `parse_error` says why.
    """

    name: str
    arguments: dict[str, Any]
    call_id: str
    raw_arguments: str | None = None
    parse_error: str | None = None


@dataclass(slots=True)
class Message:
    """One transcript entry.

    Assistant turns that request tools carry `tool_calls`; tool results carry
    the `tool_call_id` of the request they answer.
    """

    role: Role
    content: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    tool_call_id: str | None = None
    name: str | None = None
    usage: TokenUsage | None = None
    status: AnswerStatus | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, **kwargs: Any) -> Message:
        return cls(role=Role.ASSISTANT, content=content, **kwargs)

    @classmethod
    def tool_result(cls, content: str, *, call: ToolCallRequest) -> Message:
        return cls(
            role=Role.TOOL_RESULT,
            content=content,
            tool_call_id=call.call_id,
            name=call.name,
        )


@dataclass(slots=True)
class QueryRequest:
    """A single statement aimed at one data source."""

    query: str
    database: str | None = None


@dataclass(slots=True)
class TabularResult:
    """Column names plus positionally aligned rows."""

    columns: list[str]
    rows: list[list[Any]]

    def __post_init__(self) -> None:
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} values, expected {width}"
                )

    @classmethod
    def from_records(cls, records: list[dict[str, Any]]) -> TabularResult:
        if not records:
            return cls(columns=[], rows=[])
        columns = list(records[0].keys())
        rows = [[record.get(column) for column in columns] for record in records]
        return cls(columns=columns, rows=rows)

    def records(self) -> list[dict[str, Any]]:
        return [dict(zip(self.columns, row, strict=True)) for row in self.rows]

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True, slots=True)
class TokenBudget:
    """Approximate token ceiling applied to one tool result."""

    max_tokens: int

    @property
    def char_limit(self) -> int:
        return self.max_tokens * CHARS_PER_TOKEN


@dataclass(slots=True)
class ToolCallResult:
    """Outcome of one tool call, success payload or structured error."""

    name: str
    call_id: str | None
    payload: dict[str, Any] | None = None
    error_kind: str | None = None
    error_message: str | None = None
    tool_calls: int = 0

    @property
    def ok(self) -> bool:
        return self.error_kind is None

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            body = dict(self.payload or {})
        else:
            body = {
                "status": "error",
                "kind": self.error_kind,
                "message": self.error_message or "",
            }
        body["toolCalls"] = self.tool_calls
        return body

    def to_text(self) -> str:
        return json.dumps(
            self.to_dict(), ensure_ascii=False, separators=(",", ":"), default=str
        )


@dataclass(slots=True)
class RetrievedDocument:
    """A vector-store hit used to augment the agent's instructions."""

    content: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return sha1(self.content.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class ParsedDocument:
    """A parsed reference source before it is split into snippets."""

    doc_id: str
    text: str
    metadata: dict[str, Any]


@dataclass(slots=True)
class ReferenceSnippet:
    """A unit of reference text stored in the vector store."""

    snippet_id: str
    doc_id: str
    text: str
    metadata: dict[str, Any]


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    ok: bool = True
