"""Model-facing tool call schemas and manifest helpers."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if TYPE_CHECKING:
    from .tool_registry import ToolRegistry


class ToolCallParseError(ValueError):
    """Raised when a tool call payload from the model cannot be understood."""


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model. Not trusted."""

    model_config = ConfigDict(frozen=True)

    tool_name: str
    raw_arguments: Any = Field(default_factory=dict)
    call_id: str | None = None

    @field_validator("raw_arguments", mode="before")
    @classmethod
    def _decode_json_arguments(cls, value: Any) -> Any:
        # Function-calling APIs send arguments as a JSON string. Anything that
        # does not decode is left alone for the schema validator to reject.
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return {}
            try:
                return json.loads(stripped)
            except json.JSONDecodeError:
                return value
        if value is None:
            return {}
        return value

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ToolCallRequest:
        """Build a request from the common tool call wire shapes.

        Accepts ``{"name", "arguments"}``, ``{"tool_name", "args"}``,
        ``{"function": {"name", "arguments"}}`` and Anthropic-style
        ``{"name", "input"}`` blocks; ``id``/``call_id`` become ``call_id``.
        """
        if not isinstance(payload, Mapping):
            raise ToolCallParseError(f"Tool call must be an object, got {type(payload).__name__}")
        call_id = payload.get("call_id") or payload.get("id")
        body: Mapping[str, Any] = payload
        function = payload.get("function")
        if isinstance(function, Mapping):
            body = function
        name = body.get("name") or body.get("tool_name") or payload.get("tool_name")
        arguments: Any = None
        for key in ("arguments", "args", "input", "raw_arguments"):
            if key in body:
                arguments = body[key]
                break
        try:
            return cls(
                tool_name=name,
                raw_arguments=arguments,
                call_id=str(call_id) if call_id is not None else None,
            )
        except ValidationError as exc:
            raise ToolCallParseError(f"Invalid tool call: {exc}") from exc


def parse_tool_calls(raw_payload: str | Iterable[Mapping[str, Any]] | Mapping[str, Any]) -> list[ToolCallRequest]:
    """Parse one or many tool calls from JSON text or decoded objects."""
    data: Any = raw_payload
    if isinstance(raw_payload, str):
        try:
            data = json.loads(raw_payload)
        except json.JSONDecodeError as exc:
            raise ToolCallParseError(f"Invalid JSON: {exc}") from exc
    if isinstance(data, Mapping):
        if isinstance(data.get("tool_calls"), list):
            data = data["tool_calls"]
        else:
            data = [data]
    if not isinstance(data, Iterable):
        raise ToolCallParseError("Tool calls must be an object or a list of objects")
    return [ToolCallRequest.from_payload(item) for item in data]


class AgentToolResult(BaseModel):
    """Message emitted back to the model after running a tool."""

    type: Literal["tool_result"] = "tool_result"
    tool_name: str
    call_id: str | None = None
    status: Literal["success", "error"]
    output: str
    data: Any | None = None


@dataclass(slots=True)
class ToolManifestTool:
    """Manifest entry for a single tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    required: list[str]


@dataclass(slots=True)
class ToolManifestToolkit:
    """Manifest entry describing a toolkit and its tools."""

    name: str
    description: str
    version: str
    tools: list[ToolManifestTool]


def build_tool_manifest(registry: ToolRegistry) -> list[ToolManifestToolkit]:
    """Serialise the registry to a manifest suitable for LLM prompts."""
    manifest: list[ToolManifestToolkit] = []
    for toolkit in sorted(registry.available_toolkits().values(), key=lambda tk: tk.name):
        tools = [
            ToolManifestTool(
                name=tool.name,
                description=tool.description,
                input_schema=tool.input_schema,
                required=tool.required,
            )
            for tool in toolkit.tools
        ]
        manifest.append(
            ToolManifestToolkit(
                name=toolkit.name,
                description=toolkit.description,
                version=toolkit.version,
                tools=tools,
            )
        )
    return manifest


def manifest_to_prompt_section(toolkits: Iterable[ToolManifestToolkit]) -> str:
    """Render the manifest as compact JSON for the system prompt."""
    serialisable: list[dict[str, Any]] = []
    for toolkit in toolkits:
        serialisable.append(
            {
                "toolkit": toolkit.name,
                "version": toolkit.version,
                "description": toolkit.description,
                "tools": [
                    {
                        "name": tool.name,
                        "description": tool.description,
                        "input_schema": tool.input_schema,
                        "required": tool.required,
                    }
                    for tool in toolkit.tools
                ],
            }
        )
    return json.dumps(serialisable, separators=(",", ":"))


def tool_declarations(registry: ToolRegistry) -> list[dict[str, Any]]:
    """Return ``{name, description, input_schema}`` for every registered tool."""
    return [
        {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema}
        for tool in registry.declared_tools()
    ]


def to_function_specs(registry: ToolRegistry, *, style: str = "openai") -> list[dict[str, Any]]:
    """Shape the declarations for a provider's native tool-calling API."""
    declarations = tool_declarations(registry)
    if style == "openai":
        return [
            {
                "type": "function",
                "function": {
                    "name": item["name"],
                    "description": item["description"],
                    "parameters": item["input_schema"],
                },
            }
            for item in declarations
        ]
    if style == "anthropic":
        return [
            {"name": item["name"], "description": item["description"], "input_schema": item["input_schema"]}
            for item in declarations
        ]
    raise ValueError(f"Unknown function spec style '{style}'")


__all__ = [
    "AgentToolResult",
    "ToolCallParseError",
    "ToolCallRequest",
    "ToolManifestTool",
    "ToolManifestToolkit",
    "build_tool_manifest",
    "manifest_to_prompt_section",
    "parse_tool_calls",
    "to_function_specs",
    "tool_declarations",
]
