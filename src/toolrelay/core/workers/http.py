"""HTTP transport shared by the worker adapters."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from .base import WorkerExecutionError, WorkerInvocation, WorkerTimeoutError, WorkerUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_BACKOFF = 1.5
_UNAVAILABLE_STATUSES = {401, 403, 404}


@asynccontextmanager
async def client_scope(client: httpx.AsyncClient | None) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` untouched, or a short-lived client closed on exit."""

    if client is not None:
        yield client
        return
    async with httpx.AsyncClient() as owned:
        yield owned


async def post_json(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    *,
    invocation: WorkerInvocation,
    headers: dict[str, str] | None = None,
    max_retries: int = 2,
    backoff: float = DEFAULT_BACKOFF,
) -> Any:
    """POST ``payload`` and return the decoded JSON body.

    Failures to connect are retried with exponential backoff while the
    invocation deadline allows. Errors are raised as worker faults.
    """

    try:
        async with asyncio.timeout_at(invocation.deadline):
            response = await _send_with_retries(
                client,
                url,
                payload,
                invocation=invocation,
                headers=headers,
                max_retries=max_retries,
                backoff=backoff,
            )
    except TimeoutError as exc:
        raise WorkerTimeoutError(
            f"{invocation.tool_name} did not respond before its deadline"
        ) from exc

    if response.status_code in _UNAVAILABLE_STATUSES:
        detail = _error_detail(response)
        logger.warning("Worker for %s rejected the request (%s): %s", invocation.tool_name, response.status_code, detail)
        raise WorkerUnavailableError(f"Worker rejected the request ({response.status_code}): {detail}")
    if response.status_code >= 400:
        detail = _error_detail(response)
        logger.warning("Worker for %s failed (%s): %s", invocation.tool_name, response.status_code, detail)
        raise WorkerExecutionError(f"Worker failed ({response.status_code}): {detail}")

    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WorkerExecutionError(f"Worker returned a non-JSON response: {exc}") from exc


async def _send_with_retries(
    client: httpx.AsyncClient,
    url: str,
    payload: dict[str, Any],
    *,
    invocation: WorkerInvocation,
    headers: dict[str, str] | None,
    max_retries: int,
    backoff: float,
) -> httpx.Response:
    retries = 0
    while True:
        invocation.attempts += 1
        try:
            return await client.post(
                url,
                json=payload,
                headers=headers,
                timeout=max(invocation.remaining(), 0.001),
            )
        except httpx.TimeoutException as exc:
            raise WorkerTimeoutError(f"{invocation.tool_name} timed out: {type(exc).__name__}") from exc
        except httpx.ConnectError as exc:  # noqa: PERF203
            # Nothing reached the worker yet, so resending is safe.
            retries += 1
            sleep_for = backoff ** retries
            if retries > max_retries or sleep_for >= invocation.remaining():
                raise WorkerUnavailableError(
                    f"Worker endpoint unreachable after {invocation.attempts} attempt(s): {exc}"
                ) from exc
            logger.warning(
                "Worker request for %s failed (%s); retrying in %.1fs",
                invocation.tool_name,
                type(exc).__name__,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
        except httpx.NetworkError as exc:
            raise WorkerUnavailableError(f"Connection to worker lost: {exc}") from exc
        except httpx.HTTPError as exc:
            raise WorkerUnavailableError(f"Worker request could not be sent: {exc}") from exc


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        text = response.text.strip()
        return text[:500] if text else response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error") or body.get("detail") or body.get("message")
        if isinstance(error, dict):
            message = error.get("message")
            return str(message) if message else json.dumps(error)
        if error:
            return str(error)
    return json.dumps(body)[:500]


__all__ = ["client_scope", "post_json"]
