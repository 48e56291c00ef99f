"""Worker adapter contract and error taxonomy."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Protocol, runtime_checkable

from toolrelay.core.schema import ValidatedInput


class FailureReason(str, Enum):
    """Why a tool call did not produce a payload."""

    VALIDATION_ERROR = "validation_error"
    WORKER_UNAVAILABLE = "worker_unavailable"
    WORKER_TIMEOUT = "worker_timeout"
    WORKER_ERROR = "worker_error"
    UNKNOWN_TOOL = "unknown_tool"


class WorkerFault(RuntimeError):
    """Base error raised by worker adapters."""

    reason: ClassVar[FailureReason] = FailureReason.WORKER_ERROR


class WorkerUnavailableError(WorkerFault):
    """Raised when the worker cannot be reached or is not configured."""

    reason = FailureReason.WORKER_UNAVAILABLE


class WorkerTimeoutError(WorkerFault):
    """Raised when the worker does not answer before the deadline."""

    reason = FailureReason.WORKER_TIMEOUT


class WorkerExecutionError(WorkerFault):
    """Raised when the worker accepted the request and reported a failure."""

    reason = FailureReason.WORKER_ERROR


@dataclass(slots=True)
class WorkerInvocation:
    """Per-call bookkeeping handed to the worker adapter.

    ``started_at`` and ``deadline`` are expressed on the running event loop's
    clock (``loop.time()``). Adapters bump ``attempts`` once per transport
    attempt.
    """

    tool_name: str
    started_at: float
    deadline: float
    call_id: str | None = None
    attempts: int = 0

    def remaining(self) -> float:
        return max(self.deadline - asyncio.get_running_loop().time(), 0.0)

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass(slots=True)
class WorkerSettings:
    """Connection settings for an HTTP-backed worker."""

    base_url: str
    api_key: str | None = None
    max_retries: int = 2
    backoff: float = 1.5


@runtime_checkable
class WorkerAdapter(Protocol):
    """Uniform async surface wrapping one external capability."""

    name: str

    async def invoke(self, arguments: ValidatedInput, invocation: WorkerInvocation) -> Any:
        ...


__all__ = [
    "FailureReason",
    "WorkerAdapter",
    "WorkerExecutionError",
    "WorkerFault",
    "WorkerInvocation",
    "WorkerSettings",
    "WorkerTimeoutError",
    "WorkerUnavailableError",
]
