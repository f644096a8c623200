"""Parsers that turn reference files into plain text for the vector store."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from analytics_agent.types import ParsedDocument

_FRONT_MATTER = re.compile(r"\A---\s*\n.*?\n---\s*\n", re.DOTALL)
_BLANK_LINES = re.compile(r"\n\s*\n")


class Parser(ABC):
    """Reads one reference file."""

    extensions: tuple[str, ...] = ()
    format_name = "text"

    def parse(self, path: Path, *, doc_id: str | None = None) -> ParsedDocument:
        return ParsedDocument(
            doc_id=doc_id or path.stem,
            text=self.to_text(path.read_text(encoding="utf-8")),
            metadata={"source": str(path), "format": self.format_name},
        )

    @abstractmethod
    def to_text(self, raw: str) -> str:
        """Normalize raw file content; blank lines separate snippets."""


class TextParser(Parser):
    extensions = (".txt",)

    def to_text(self, raw: str) -> str:
        return raw.replace("\r\n", "\n").strip()


class MarkdownParser(Parser):
    """Markdown notes; YAML front matter is dropped."""

    extensions = (".md", ".markdown")
    format_name = "markdown"

    def to_text(self, raw: str) -> str:
        return _FRONT_MATTER.sub("", raw.replace("\r\n", "\n"), count=1).strip()


class JsonParser(Parser):
    """Reference entries stored as JSON.

    A list of objects (for example `{"question": ..., "query": ...}` pairs)
    becomes one `key: value` block per entry, so each entry lands in its own
    snippet. A single object is treated as a one-entry list.
    """

    extensions = (".json",)
    format_name = "json"

    def to_text(self, raw: str) -> str:
        payload: Any = json.loads(raw)
        entries = payload if isinstance(payload, list) else [payload]
        blocks = [_render_entry(entry) for entry in entries]
        return "\n\n".join(block for block in blocks if block)


def _render_entry(entry: Any) -> str:
    if isinstance(entry, dict):
        lines = []
        for key, value in entry.items():
            if value is None or value == "":
                continue
            if not isinstance(value, str):
                value = json.dumps(value, ensure_ascii=False)
            # Blank lines inside a value would split the entry.
            value = _BLANK_LINES.sub("\n", value.strip())
            lines.append(f"{key}: {value}")
        return "\n".join(lines)
    return str(entry).strip()


class ParserRegistry:
    """Chooses a parser by file extension."""

    def __init__(self, parsers: list[Parser] | None = None) -> None:
        self._parsers: dict[str, Parser] = {}
        for parser in parsers or [TextParser(), MarkdownParser(), JsonParser()]:
            self.register(parser)

    def register(self, parser: Parser) -> None:
        for extension in parser.extensions:
            self._parsers[extension.lower()] = parser

    def supports(self, path: str | Path) -> bool:
        return Path(path).suffix.lower() in self._parsers

    def parse_path(self, path: str | Path, *, doc_id: str | None = None) -> ParsedDocument:
        file_path = Path(path)
        parser = self._parsers.get(file_path.suffix.lower())
        if parser is None:
            raise ValueError(f"No parser registered for extension: {file_path.suffix}")
        return parser.parse(file_path, doc_id=doc_id)
