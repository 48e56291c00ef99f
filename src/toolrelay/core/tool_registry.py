"""Tool registry exposed to the reasoning loop."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from types import MappingProxyType
from typing import TYPE_CHECKING

import httpx

from toolrelay.core.tools import DEFAULT_TOOLKIT_FACTORIES, code_toolkit, search_toolkit
from toolrelay.core.tools.base import (
    RegistryFrozenError,
    Tool,
    ToolAlreadyRegisteredError,
    Toolkit,
    ToolkitAlreadyRegisteredError,
    ToolNotFoundError,
    ToolRegistryError,
    ToolResult,
)
from toolrelay.core.workers import CodeExecutionWorker, SearchWorker, WorkerSettings

if TYPE_CHECKING:
    from toolrelay.core.config import ConfigContext


class ToolRegistry:
    """Stores tools grouped by toolkits; read-only once frozen."""

    def __init__(self, toolkits: list[Toolkit] | None = None) -> None:
        self._tools: dict[str, Tool] | Mapping[str, Tool] = {}
        self._toolkits: dict[str, Toolkit] | Mapping[str, Toolkit] = {}
        self._aliases: set[str] = set()
        self._frozen = False
        if toolkits:
            for toolkit in toolkits:
                self.add_toolkit(toolkit)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def add_toolkit(self, toolkit: Toolkit) -> None:
        self._ensure_mutable()
        if toolkit.name in self._toolkits:
            raise ToolkitAlreadyRegisteredError(f"Toolkit '{toolkit.name}' already registered")

        staged: dict[str, Tool] = {}
        for tool in toolkit.tools:
            if tool.name in self._tools or tool.name in staged:
                raise ToolAlreadyRegisteredError(f"Tool '{tool.name}' already registered")
            staged[tool.name] = tool
        for tool in toolkit.tools:
            # Namespaced alias: "<toolkit>.<tool>"; skipped if taken.
            alias_name = f"{toolkit.name}.{tool.name}"
            if alias_name in self._tools or alias_name in staged:
                continue
            staged[alias_name] = replace(tool, name=alias_name)
            self._aliases.add(alias_name)

        self._tools.update(staged)  # type: ignore[union-attr]
        self._toolkits[toolkit.name] = toolkit  # type: ignore[index]

    def register(self, tool: Tool) -> None:
        self._ensure_mutable()
        if tool.name in self._tools:
            raise ToolAlreadyRegisteredError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool  # type: ignore[index]

    def freeze(self) -> ToolRegistry:
        """Make the registry read-only. Safe to call more than once."""
        if not self._frozen:
            self._tools = MappingProxyType(dict(self._tools))
            self._toolkits = MappingProxyType(dict(self._toolkits))
            self._frozen = True
        return self

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise ToolNotFoundError(f"Unknown tool '{name}'") from exc

    def lookup(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def available_tools(self) -> dict[str, Tool]:
        return dict(self._tools)

    def available_toolkits(self) -> dict[str, Toolkit]:
        return dict(self._toolkits)

    def declared_tools(self) -> list[Tool]:
        """Registered tools in registration order, without toolkit aliases."""
        return [tool for name, tool in self._tools.items() if name not in self._aliases]

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("Tool registry is frozen; register tools during startup")


def build_default_registry(
    context: ConfigContext | None = None,
    *,
    client: httpx.AsyncClient | None = None,
) -> ToolRegistry:
    """Return a frozen registry holding the built-in toolkits.

    Without a configuration context the workers are left unconfigured and
    every call reports ``worker_unavailable``.
    """
    if context is None:
        toolkits = [factory() for factory in DEFAULT_TOOLKIT_FACTORIES]
        return ToolRegistry(toolkits=toolkits).freeze()

    config = context.config
    search_worker = SearchWorker(
        WorkerSettings(
            base_url=config.search_base_url,
            api_key=context.worker_keys.get("search"),
            max_retries=config.worker_max_retries,
            backoff=config.worker_retry_backoff,
        ),
        client=client,
        max_results=config.search_max_results,
    )
    code_worker = CodeExecutionWorker(
        WorkerSettings(
            base_url=config.code_exec_base_url,
            api_key=context.worker_keys.get("code_exec"),
            max_retries=config.worker_max_retries,
            backoff=config.worker_retry_backoff,
        ),
        client=client,
        language=config.code_exec_language,
    )
    toolkits = [search_toolkit(search_worker), code_toolkit(code_worker)]
    return ToolRegistry(toolkits=toolkits).freeze()


__all__ = [
    "ToolRegistry",
    "Tool",
    "ToolResult",
    "ToolRegistryError",
    "ToolNotFoundError",
    "ToolAlreadyRegisteredError",
    "Toolkit",
    "ToolkitAlreadyRegisteredError",
    "RegistryFrozenError",
    "build_default_registry",
]
