"""Worker adapters.

Each adapter wraps exactly one external capability behind
``invoke(arguments, invocation)`` and reports failures as
:class:`WorkerFault` subclasses. ``http.py`` holds the shared httpx
transport with deadline and retry handling.
"""

from .base import (
    FailureReason,
    WorkerAdapter,
    WorkerExecutionError,
    WorkerFault,
    WorkerInvocation,
    WorkerSettings,
    WorkerTimeoutError,
    WorkerUnavailableError,
)
from .code_exec import CodeExecutionWorker
from .search import SearchWorker

__all__ = [
    "CodeExecutionWorker",
    "FailureReason",
    "SearchWorker",
    "WorkerAdapter",
    "WorkerExecutionError",
    "WorkerFault",
    "WorkerInvocation",
    "WorkerSettings",
    "WorkerTimeoutError",
    "WorkerUnavailableError",
]
