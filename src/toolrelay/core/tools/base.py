"""Shared types for tool implementations."""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from toolrelay.core.agent import AgentToolResult
from toolrelay.core.schema import CompiledSchema, ValidatedInput, compile_schema
from toolrelay.core.workers.base import FailureReason, WorkerInvocation


class ToolRegistryError(RuntimeError):
    """Base error for tool registry failures."""


class ToolAlreadyRegisteredError(ToolRegistryError):
    """Raised when attempting to register a tool with a duplicate name."""


class ToolNotFoundError(ToolRegistryError):
    """Raised when looking up an unknown tool."""


class ToolkitAlreadyRegisteredError(ToolRegistryError):
    """Raised when attempting to register a toolkit twice."""


class RegistryFrozenError(ToolRegistryError):
    """Raised when registering after the registry has been frozen."""


class ToolClass(str, Enum):
    """Selects the default deadline applied to a tool."""

    LOOKUP = "lookup"
    EXECUTION = "execution"


ToolHandler = Callable[[ValidatedInput, WorkerInvocation], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class ToolSuccess:
    """A tool call that produced a payload."""

    tool_name: str
    payload: Any
    call_id: str | None = None
    latency_seconds: float = 0.0
    kind: Literal["success"] = "success"

    @property
    def ok(self) -> bool:
        return True

    def to_message(self) -> dict[str, Any]:
        return AgentToolResult(
            tool_name=self.tool_name,
            call_id=self.call_id,
            status="success",
            output=_render_payload(self.payload),
            data=self.payload,
        ).model_dump()


@dataclass(frozen=True, slots=True)
class ToolFailure:
    """A tool call that ended without a payload."""

    tool_name: str
    reason: FailureReason
    detail: str
    call_id: str | None = None
    latency_seconds: float = 0.0
    kind: Literal["failure"] = "failure"

    @property
    def ok(self) -> bool:
        return False

    def to_message(self) -> dict[str, Any]:
        return AgentToolResult(
            tool_name=self.tool_name,
            call_id=self.call_id,
            status="error",
            output=f"{self.reason.value}: {self.detail}",
            data={"reason": self.reason.value, "detail": self.detail},
        ).model_dump()


ToolResult = ToolSuccess | ToolFailure


def _render_payload(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(payload)


@dataclass(frozen=True, slots=True)
class Tool:
    """Metadata for a registered tool."""

    name: str
    description: str
    input_schema: dict[str, Any]
    output_schema: dict[str, Any]
    handler: ToolHandler
    tool_class: ToolClass = ToolClass.LOOKUP
    timeout_seconds: float | None = None
    canonical_name: str = ""
    compiled: CompiledSchema = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Aliases keep the name the tool was declared under.
        if not self.canonical_name:
            object.__setattr__(self, "canonical_name", self.name)
        object.__setattr__(self, "compiled", compile_schema(self.input_schema, name=self.name))

    def validate(self, raw_arguments: object) -> ValidatedInput:
        return self.compiled.validate(raw_arguments)

    @property
    def required(self) -> list[str]:
        required_fields = self.input_schema.get("required")
        return list(required_fields) if isinstance(required_fields, list) else []


@dataclass(frozen=True, slots=True)
class Toolkit:
    """Groups related tools together."""

    name: str
    version: str
    description: str
    tools: tuple[Tool, ...]


__all__ = [
    "FailureReason",
    "RegistryFrozenError",
    "Tool",
    "ToolAlreadyRegisteredError",
    "ToolClass",
    "ToolFailure",
    "ToolHandler",
    "ToolNotFoundError",
    "ToolRegistryError",
    "ToolResult",
    "ToolSuccess",
    "Toolkit",
    "ToolkitAlreadyRegisteredError",
    "WorkerInvocation",
]
