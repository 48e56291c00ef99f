"""Dispatch of model-issued tool calls to their workers.

The dispatcher is the boundary between the reasoning loop and the workers:
whatever happens inside a handler, :meth:`Dispatcher.dispatch` returns a
:class:`ToolSuccess` or :class:`ToolFailure`. Only cancellation of the
awaiting task propagates, so an aborted turn tears down its in-flight calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from toolrelay.core.agent import ToolCallRequest
from toolrelay.core.logs import DispatchLog
from toolrelay.core.schema import SchemaValidationError, ValidatedInput
from toolrelay.core.tool_registry import ToolRegistry
from toolrelay.core.tools.base import Tool, ToolClass, ToolFailure, ToolResult, ToolSuccess
from toolrelay.core.workers.base import FailureReason, WorkerFault, WorkerInvocation

if TYPE_CHECKING:
    from toolrelay.core.config import ToolRelayConfig

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_EXECUTION_TIMEOUT_SECONDS = 120.0
DEFAULT_GRACE_SECONDS = 0.5


class CallState(str, Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    REJECTED = "rejected"
    DISPATCHED = "dispatched"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[CallState, frozenset[CallState]] = {
    CallState.RECEIVED: frozenset({CallState.VALIDATING, CallState.REJECTED}),
    CallState.VALIDATING: frozenset({CallState.REJECTED, CallState.DISPATCHED}),
    CallState.DISPATCHED: frozenset({CallState.SUCCEEDED, CallState.FAILED}),
    CallState.REJECTED: frozenset(),
    CallState.SUCCEEDED: frozenset(),
    CallState.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a call is moved to a state its lifecycle does not allow."""


@dataclass(slots=True)
class CallTrace:
    """Lifecycle of a single tool call."""

    tool_name: str
    call_id: str | None = None
    state: CallState = CallState.RECEIVED
    history: list[CallState] = field(default_factory=lambda: [CallState.RECEIVED])

    def advance(self, state: CallState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise InvalidTransitionError(f"{self.tool_name}: cannot move from {self.state.value} to {state.value}")
        self.state = state
        self.history.append(state)

    @property
    def terminal(self) -> bool:
        return not _TRANSITIONS[self.state]


@dataclass(slots=True)
class DispatchTimeouts:
    """Deadline budget per tool: explicit per-tool values win, then the tool
    class, then the fixed default."""

    default_seconds: float = DEFAULT_TIMEOUT_SECONDS
    per_class: dict[ToolClass, float] = field(
        default_factory=lambda: {ToolClass.EXECUTION: DEFAULT_EXECUTION_TIMEOUT_SECONDS}
    )
    per_tool: dict[str, float] = field(default_factory=dict)
    grace_seconds: float = DEFAULT_GRACE_SECONDS

    @classmethod
    def from_config(cls, config: ToolRelayConfig) -> DispatchTimeouts:
        return cls(
            default_seconds=config.default_timeout_seconds,
            per_class={ToolClass.EXECUTION: config.execution_timeout_seconds},
            per_tool=dict(config.tool_timeouts or {}),
            grace_seconds=config.timeout_grace_seconds,
        )

    def for_tool(self, tool: Tool) -> float:
        for name in (tool.name, tool.canonical_name):
            if name in self.per_tool:
                return self.per_tool[name]
        if tool.timeout_seconds is not None:
            return tool.timeout_seconds
        return self.per_class.get(tool.tool_class, self.default_seconds)


class Dispatcher:
    """Resolves, validates and runs tool calls against a frozen registry."""

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        timeouts: DispatchTimeouts | None = None,
        log: DispatchLog | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._registry = registry.freeze()
        self._timeouts = timeouts or DispatchTimeouts()
        self.log = log if log is not None else DispatchLog()
        self._clock = clock or time.perf_counter

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    async def dispatch(
        self,
        request: ToolCallRequest | str,
        raw_arguments: Mapping[str, Any] | str | None = None,
        *,
        call_id: str | None = None,
    ) -> ToolResult:
        """Run one tool call and return its outcome; never raises for tool faults."""

        if not isinstance(request, ToolCallRequest):
            try:
                request = ToolCallRequest(
                    tool_name=request,
                    raw_arguments={} if raw_arguments is None else raw_arguments,
                    call_id=call_id,
                )
            except ValidationError:
                return self._reject_malformed(request, call_id)

        trace = CallTrace(tool_name=request.tool_name, call_id=request.call_id)
        started = self._clock()
        invocation: WorkerInvocation | None = None

        tool = self._registry.lookup(request.tool_name)
        if tool is None:
            trace.advance(CallState.REJECTED)
            available = ", ".join(sorted(self._registry.available_tools())) or "none"
            result: ToolResult = ToolFailure(
                tool_name=request.tool_name,
                reason=FailureReason.UNKNOWN_TOOL,
                detail=f"Unknown tool '{request.tool_name}'. Available tools: {available}",
                call_id=request.call_id,
            )
        else:
            trace.advance(CallState.VALIDATING)
            try:
                arguments = tool.validate(request.raw_arguments)
            except SchemaValidationError as exc:
                trace.advance(CallState.REJECTED)
                result = ToolFailure(
                    tool_name=request.tool_name,
                    reason=FailureReason.VALIDATION_ERROR,
                    detail=str(exc),
                    call_id=request.call_id,
                )
            else:
                trace.advance(CallState.DISPATCHED)
                invocation = self._new_invocation(tool, request)
                result = await self._invoke(tool, arguments, request, invocation)
                trace.advance(CallState.SUCCEEDED if result.ok else CallState.FAILED)

        result = replace(result, latency_seconds=self._clock() - started)
        self._emit(trace, result, invocation)
        return result

    async def dispatch_all(self, requests: Iterable[ToolCallRequest]) -> list[ToolResult]:
        """Run calls concurrently; results keep the order of ``requests``."""

        return list(await asyncio.gather(*(self.dispatch(request) for request in requests)))

    async def dispatch_as_completed(self, requests: Iterable[ToolCallRequest]) -> AsyncIterator[ToolResult]:
        """Yield results as calls finish. Closing the iterator cancels the rest."""

        tasks = [asyncio.create_task(self.dispatch(request)) for request in requests]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

    def _reject_malformed(self, tool_name: object, call_id: object) -> ToolResult:
        name = str(tool_name)
        trace = CallTrace(tool_name=name, call_id=call_id if isinstance(call_id, str) else None)
        trace.advance(CallState.REJECTED)
        result = ToolFailure(
            tool_name=name,
            reason=FailureReason.UNKNOWN_TOOL,
            detail=f"Tool name must be a string, got {type(tool_name).__name__}",
            call_id=trace.call_id,
        )
        self._emit(trace, result, None)
        return result

    def _new_invocation(self, tool: Tool, request: ToolCallRequest) -> WorkerInvocation:
        now = asyncio.get_running_loop().time()
        return WorkerInvocation(
            tool_name=request.tool_name,
            started_at=now,
            deadline=now + self._timeouts.for_tool(tool),
            call_id=request.call_id,
        )

    async def _invoke(
        self,
        tool: Tool,
        arguments: ValidatedInput,
        request: ToolCallRequest,
        invocation: WorkerInvocation,
    ) -> ToolResult:
        budget = invocation.deadline - invocation.started_at
        try:
            async with asyncio.timeout_at(invocation.deadline + self._timeouts.grace_seconds):
                payload = await tool.handler(arguments, invocation)
        except WorkerFault as exc:
            return ToolFailure(
                tool_name=request.tool_name,
                reason=exc.reason,
                detail=str(exc) or exc.reason.value,
                call_id=request.call_id,
            )
        except TimeoutError:
            return ToolFailure(
                tool_name=request.tool_name,
                reason=FailureReason.WORKER_TIMEOUT,
                detail=f"{request.tool_name} did not finish within {budget:.1f}s",
                call_id=request.call_id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s raised an unexpected error", request.tool_name)
            return ToolFailure(
                tool_name=request.tool_name,
                reason=FailureReason.WORKER_ERROR,
                detail=f"{type(exc).__name__}: {exc}",
                call_id=request.call_id,
            )
        return ToolSuccess(tool_name=request.tool_name, payload=payload, call_id=request.call_id)

    def _emit(self, trace: CallTrace, result: ToolResult, invocation: WorkerInvocation | None) -> None:
        reason = result.reason.value if isinstance(result, ToolFailure) else None
        fields = {
            "tool_name": result.tool_name,
            "call_id": result.call_id,
            "outcome": result.kind,
            "reason": reason,
            "state": trace.state.value,
            "latency_ms": round(result.latency_seconds * 1000, 1),
            "attempts": invocation.attempts if invocation else 0,
        }
        if result.ok:
            severity, level = "info", logging.INFO
        elif result.reason in {FailureReason.UNKNOWN_TOOL, FailureReason.VALIDATION_ERROR}:
            severity, level = "warning", logging.WARNING
        else:
            severity, level = "error", logging.ERROR

        message = f"dispatch {result.tool_name} -> {reason or result.kind}"
        logger.log(level, "%s (%.1f ms)", message, fields["latency_ms"], extra={"toolrelay": fields})
        try:
            self.log.record("dispatch", message, severity=severity, **fields)
        except Exception:  # noqa: BLE001
            logger.exception("Dispatch log subscriber failed for %s", result.tool_name)


__all__ = [
    "CallState",
    "CallTrace",
    "DispatchTimeouts",
    "Dispatcher",
    "InvalidTransitionError",
]
