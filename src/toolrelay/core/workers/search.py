"""Web search worker adapter."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from toolrelay.core.schema import ValidatedInput

from .base import WorkerExecutionError, WorkerInvocation, WorkerSettings, WorkerUnavailableError
from .http import client_scope, post_json

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 5
_RESULT_LIST_KEYS = ("results", "organic", "items")
_SNIPPET_KEYS = ("snippet", "content", "description", "text")


class SearchWorker:
    """Delegates web lookups to an HTTP search backend."""

    name = "search"

    def __init__(
        self,
        settings: WorkerSettings,
        *,
        client: httpx.AsyncClient | None = None,
        max_results: int = DEFAULT_MAX_RESULTS,
    ) -> None:
        self._settings = settings
        self._client = client
        self._max_results = max_results

    async def invoke(self, arguments: ValidatedInput, invocation: WorkerInvocation) -> dict[str, Any]:
        if not self._settings.api_key:
            raise WorkerUnavailableError("Search worker is not configured: missing API key")
        if not self._settings.base_url:
            raise WorkerUnavailableError("Search worker is not configured: missing base URL")

        query = str(arguments["query"]).strip()
        if not query:
            raise WorkerExecutionError("Search query is empty")
        max_results = arguments.get("max_results")
        if max_results is None:
            max_results = self._max_results

        url = f"{self._settings.base_url.rstrip('/')}/search"
        headers = {"Authorization": f"Bearer {self._settings.api_key}"}
        logger.debug("Searching the web for %r (max_results=%s)", query, max_results)
        async with client_scope(self._client) as client:
            body = await post_json(
                client,
                url,
                {"query": query, "max_results": max_results},
                invocation=invocation,
                headers=headers,
                max_retries=self._settings.max_retries,
                backoff=self._settings.backoff,
            )
        return normalize_search_response(query, body, limit=max_results)


def normalize_search_response(query: str, body: Any, *, limit: int) -> dict[str, Any]:
    """Collapse a backend search response into ``{query, answer, results}``."""

    if not isinstance(body, dict):
        raise WorkerExecutionError("Search worker returned an unexpected payload")
    error = body.get("error")
    if error:
        raise WorkerExecutionError(f"Search worker reported an error: {error}")

    raw_results: list[Any] = []
    for key in _RESULT_LIST_KEYS:
        value = body.get(key)
        if isinstance(value, list):
            raw_results = value
            break

    results: list[dict[str, str]] = []
    for item in raw_results:
        if not isinstance(item, dict):
            continue
        url = item.get("url") or item.get("link") or ""
        title = item.get("title") or url
        snippet = ""
        for key in _SNIPPET_KEYS:
            text = item.get(key)
            if isinstance(text, str) and text.strip():
                snippet = text.strip()
                break
        if not (title or snippet):
            continue
        results.append({"title": str(title), "url": str(url), "snippet": snippet})
        if len(results) >= limit:
            break

    answer = body.get("answer")
    return {
        "query": query,
        "answer": answer if isinstance(answer, str) and answer.strip() else None,
        "results": results,
    }


__all__ = ["SearchWorker", "normalize_search_response", "DEFAULT_MAX_RESULTS"]
