"""Tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from analytics_agent.errors import ToolNotFound


class ToolParameter(BaseModel):
    """One named argument advertised to the model."""

    name: str
    type: str
    description: str = ""
    enum: list[Any] | None = None
    required: bool = False


class ToolDefinition(BaseModel):
    """Provider-facing description of a registered tool."""

    name: str
    description: str
    parameters: list[ToolParameter] = Field(default_factory=list)

    def to_function_schema(self) -> dict[str, Any]:
        """Render the OpenAI-style `function` payload understood by most backends."""

        properties: dict[str, Any] = {}
        for parameter in self.parameters:
            prop: dict[str, Any] = {
                "type": parameter.type,
                "description": parameter.description,
            }
            if parameter.enum:
                prop["enum"] = parameter.enum
            properties[parameter.name] = prop

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": properties,
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[Any], dict[str, Any]]
    tags: list[str] = Field(default_factory=list)

    def invoke(self, payload: dict[str, Any]) -> dict[str, Any]:
        data = self.args_schema.model_validate(payload)
        return self.handler(data)

    def definition(self) -> ToolDefinition:
        schema = self.args_schema.model_json_schema()
        required = set(schema.get("required", []))
        parameters = [
            ToolParameter(
                name=name,
                type=_json_type(prop),
                description=str(prop.get("description", "")),
                enum=_enum_values(prop),
                required=name in required,
            )
            for name, prop in schema.get("properties", {}).items()
        ]
        return ToolDefinition(
            name=self.name, description=self.description, parameters=parameters
        )


class ToolRegistry:
    """Maps model-chosen tool names to typed handlers.

    The registry is filled once at start-up and only read afterwards, so a
    single instance can back any number of concurrent agent invocations.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def get(self, name: str) -> ToolSpec:
        spec = self._tools.get(name)
        if spec is None:
            raise ToolNotFound(f"Unknown tool: {name}")
        return spec

    def execute(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self.get(name).invoke(payload)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def definitions(self) -> list[ToolDefinition]:
        return [spec.definition() for spec in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools


def _json_type(prop: dict[str, Any]) -> str:
    if "type" in prop:
        return str(prop["type"])
    # Optional fields render as anyOf [<type>, null].
    for option in prop.get("anyOf", []):
        if option.get("type") and option["type"] != "null":
            return str(option["type"])
    return "string"


def _enum_values(prop: dict[str, Any]) -> list[Any] | None:
    if "enum" in prop:
        return list(prop["enum"])
    for option in prop.get("anyOf", []):
        if "enum" in option:
            return list(option["enum"])
    return None
