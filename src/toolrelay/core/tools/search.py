from __future__ import annotations

from toolrelay.core.tools.base import Tool, ToolClass, Toolkit
from toolrelay.core.workers import SearchWorker, WorkerSettings

SEARCH_WEB_INPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "The search query",
        },
        "max_results": {
            "type": "integer",
            "minimum": 1,
            "maximum": 20,
            "description": "Optional cap on the number of results returned.",
        },
    },
    "required": ["query"],
}

SEARCH_WEB_OUTPUT_SCHEMA = {
    "type": "object",
    "properties": {
        "query": {"type": "string"},
        "answer": {"type": ["string", "null"]},
        "results": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                    "snippet": {"type": "string"},
                },
                "required": ["title", "url", "snippet"],
            },
        },
    },
    "required": ["query", "results"],
}


def search_toolkit(worker: SearchWorker | None = None) -> Toolkit:
    worker = worker or SearchWorker(WorkerSettings(base_url=""))
    tool = Tool(
        name="searchWeb",
        description=(
            "Search the web for current information, facts, news, or research. "
            "Use this when you need up-to-date information from the internet."
        ),
        input_schema=SEARCH_WEB_INPUT_SCHEMA,
        output_schema=SEARCH_WEB_OUTPUT_SCHEMA,
        handler=worker.invoke,
        tool_class=ToolClass.LOOKUP,
    )
    return Toolkit(
        name="toolrelay.web",
        version="1.0.0",
        description="Live web lookups delegated to the search worker.",
        tools=(tool,),
    )


__all__ = ["search_toolkit", "SEARCH_WEB_INPUT_SCHEMA", "SEARCH_WEB_OUTPUT_SCHEMA"]
