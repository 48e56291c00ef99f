"""Code interpreter worker adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from toolrelay.core.schema import ValidatedInput

from .base import WorkerExecutionError, WorkerInvocation, WorkerSettings, WorkerUnavailableError
from .http import client_scope, post_json

logger = logging.getLogger(__name__)

_MAX_OUTPUT_LINES = 200
_MAX_ERROR_PREVIEW_LINES = 6


def truncate_preview(text: str, *, max_lines: int) -> str:
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    truncated = "\n".join(lines[:max_lines])
    remaining = len(lines) - max_lines
    return f"{truncated}\n... ({remaining} more lines truncated)"


class CodeExecutionWorker:
    """Sends a task to the code interpreter service and reports its run."""

    name = "code_exec"

    def __init__(
        self,
        settings: WorkerSettings,
        *,
        client: httpx.AsyncClient | None = None,
        language: str = "python",
        max_output_lines: int = _MAX_OUTPUT_LINES,
    ) -> None:
        self._settings = settings
        self._client = client
        self._language = language
        self._max_output_lines = max_output_lines

    async def invoke(self, arguments: ValidatedInput, invocation: WorkerInvocation) -> dict[str, Any]:
        if not self._settings.base_url:
            raise WorkerUnavailableError("Code execution worker is not configured: missing base URL")

        task = str(arguments["task"]).strip()
        if not task:
            raise WorkerExecutionError("Code execution task is empty")

        headers: dict[str, str] = {}
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        url = f"{self._settings.base_url.rstrip('/')}/execute"
        logger.debug("Delegating task to code execution worker: %s", task)
        async with client_scope(self._client) as client:
            body = await post_json(
                client,
                url,
                {"task": task, "language": self._language},
                invocation=invocation,
                headers=headers or None,
                max_retries=self._settings.max_retries,
                backoff=self._settings.backoff,
            )
        return self._normalize(task, body)

    def _normalize(self, task: str, body: Any) -> dict[str, Any]:
        if not isinstance(body, dict):
            raise WorkerExecutionError("Code execution worker returned an unexpected payload")

        stdout = str(body.get("stdout") or "").strip()
        stderr = str(body.get("stderr") or "").strip()
        exit_code = body.get("exit_code")
        if exit_code is None:
            exit_code = body.get("returncode")
        if exit_code is None:
            exit_code = 0
        try:
            exit_code = int(exit_code)
        except (TypeError, ValueError):
            raise WorkerExecutionError(f"Code execution worker returned a bad exit code: {exit_code!r}") from None

        error = body.get("error")
        if error or body.get("status") == "error":
            detail = str(error or stderr or "unknown error")
            raise WorkerExecutionError(
                f"Code execution failed: {truncate_preview(detail, max_lines=_MAX_ERROR_PREVIEW_LINES)}"
            )
        if exit_code != 0:
            preview = truncate_preview(stderr or "(no stderr)", max_lines=_MAX_ERROR_PREVIEW_LINES)
            raise WorkerExecutionError(f"Code exited with status {exit_code}: {preview}")

        return {
            "task": task,
            "code": str(body.get("code") or ""),
            "stdout": truncate_preview(stdout, max_lines=self._max_output_lines),
            "stderr": truncate_preview(stderr, max_lines=self._max_output_lines),
            "exit_code": exit_code,
        }


__all__ = ["CodeExecutionWorker", "truncate_preview"]
