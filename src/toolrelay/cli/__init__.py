"""CLI package for toolrelay."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Optional

import httpx
import typer
import typer.rich_utils
from rich.console import Console
from rich.table import Table
from rich.theme import Theme

from toolrelay.core import (
    DEFAULT_CONFIG_DIR,
    ConfigContext,
    ConfigManager,
    ConfigurationError,
    Dispatcher,
    DispatchLog,
    DispatchTimeouts,
    ToolCallParseError,
    ToolCallRequest,
    ToolResult,
    build_default_registry,
    build_tool_manifest,
    parse_tool_calls,
    to_function_specs,
)
from toolrelay.core.config import CONFIG_FILENAME, WORKER_KEY_ENV

typer.rich_utils.USE_RICH = False

TOOLRELAY_THEME = Theme(
    {
        "toolrelay.ok": "bold #14F195",
        "toolrelay.error": "bold #FB7185",
        "toolrelay.muted": "#94A3B8",
        "toolrelay.header": "bold #38BDF8",
    }
)

app = typer.Typer(help="toolrelay: validate and dispatch model tool calls to workers", no_args_is_help=True)
config_app = typer.Typer(help="Inspect and update toolrelay configuration", no_args_is_help=True)
app.add_typer(config_app, name="config")

CLI_CONSOLE = Console(theme=TOOLRELAY_THEME)

_STATE: dict[str, Any] = {}


def styled_echo(message: str = "", *, nl: bool = True) -> None:
    """Print using the toolrelay themed console."""
    CLI_CONSOLE.print(message, end="" if not nl else "\n", markup=False, highlight=False)


def _configure_logging(verbose: bool, log_dir: Path | None) -> None:
    root_logger = logging.getLogger()
    if verbose:
        if not root_logger.handlers:
            logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        root_logger.setLevel(logging.DEBUG)
    else:
        if root_logger.handlers:
            root_logger.setLevel(logging.WARNING)
        else:
            logging.basicConfig(level=logging.WARNING, format="%(message)s")
    if verbose and log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_dir / "toolrelay.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        logging.getLogger().addHandler(handler)


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),  # noqa: B008
    config_dir: Optional[Path] = typer.Option(  # noqa: B008
        None, "--config-dir", help="Directory holding config.toml and credentials.json"
    ),
    config_file: Optional[Path] = typer.Option(  # noqa: B008
        None, "--config", help="Config file layered over the global and project config"
    ),
) -> None:
    global_home = (config_dir or DEFAULT_CONFIG_DIR).expanduser()
    _configure_logging(verbose, log_dir=global_home / "logs")

    override_path: Path | None = None
    if config_file is not None:
        override_path = config_file.expanduser()
        if not override_path.exists():
            styled_echo(f"❌ Config file '{override_path}' not found.")
            raise typer.Exit(code=1)

    project_config_path: Path | None = Path.cwd() / ".toolrelay" / CONFIG_FILENAME
    if project_config_path is not None and not project_config_path.exists():
        project_config_path = None

    _STATE["manager"] = ConfigManager(
        config_dir=global_home,
        echo_fn=styled_echo,
        project_config_path=project_config_path,
        override_config_path=override_path,
    )


def _manager() -> ConfigManager:
    manager = _STATE.get("manager")
    if manager is None:
        manager = ConfigManager(echo_fn=styled_echo)
        _STATE["manager"] = manager
    return manager


def _load_context(passphrase: str | None = None) -> ConfigContext:
    try:
        return _manager().load(passphrase=passphrase)
    except ConfigurationError as exc:
        styled_echo(f"❌ {exc}")
        raise typer.Exit(code=1) from exc


def _build_dispatcher(context: ConfigContext, client: httpx.AsyncClient | None) -> Dispatcher:
    registry = build_default_registry(context, client=client)
    return Dispatcher(
        registry,
        timeouts=DispatchTimeouts.from_config(context.config),
        log=DispatchLog(max_entries=context.config.log_buffer_size),
    )


async def _run_calls(context: ConfigContext, requests: list[ToolCallRequest]) -> list[ToolResult]:
    async with httpx.AsyncClient() as client:
        dispatcher = _build_dispatcher(context, client)
        return await dispatcher.dispatch_all(requests)


@app.command()
def tools(
    output_format: str = typer.Option("table", "--format", "-f", help="table, json, openai or anthropic"),  # noqa: B008
) -> None:
    """List the registered tools."""
    registry = build_default_registry()
    if output_format == "table":
        table = Table(title="Registered tools", header_style="toolrelay.header")
        table.add_column("Toolkit")
        table.add_column("Tool", no_wrap=True)
        table.add_column("Required")
        for toolkit in build_tool_manifest(registry):
            for tool in toolkit.tools:
                table.add_row(toolkit.name, tool.name, ", ".join(tool.required) or "-")
        CLI_CONSOLE.print(table)
        return
    if output_format == "json":
        payload = [
            {
                "toolkit": toolkit.name,
                "version": toolkit.version,
                "tools": [
                    {"name": tool.name, "description": tool.description, "input_schema": tool.input_schema}
                    for tool in toolkit.tools
                ],
            }
            for toolkit in build_tool_manifest(registry)
        ]
        typer.echo(json.dumps(payload, indent=2))
        return
    try:
        specs = to_function_specs(registry, style=output_format)
    except ValueError as exc:
        styled_echo(f"❌ {exc}. Use table, json, openai or anthropic.")
        raise typer.Exit(code=2) from exc
    typer.echo(json.dumps(specs, indent=2))


@app.command()
def dispatch(
    tool_name: str = typer.Argument(..., help="Tool to call, e.g. searchWeb"),  # noqa: B008
    arguments: str = typer.Argument("{}", help="Tool arguments as a JSON object"),  # noqa: B008
    call_id: Optional[str] = typer.Option(None, "--call-id", help="Correlation id echoed in the result"),  # noqa: B008
    passphrase: Optional[str] = typer.Option(  # noqa: B008
        None, "--passphrase", envvar="TOOLRELAY_PASSPHRASE", help="Passphrase for stored worker keys"
    ),
) -> None:
    """Validate and run a single tool call; prints the tool result message."""
    context = _load_context(passphrase)
    request = ToolCallRequest(tool_name=tool_name, raw_arguments=arguments, call_id=call_id)
    (result,) = asyncio.run(_run_calls(context, [request]))
    typer.echo(json.dumps(result.to_message(), indent=2, ensure_ascii=False, default=str))
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def batch(
    source: Path = typer.Argument(..., help="JSON file with tool calls, or '-' for stdin"),  # noqa: B008
    passphrase: Optional[str] = typer.Option(  # noqa: B008
        None, "--passphrase", envvar="TOOLRELAY_PASSPHRASE", help="Passphrase for stored worker keys"
    ),
) -> None:
    """Run a batch of tool calls concurrently; results keep the input order."""
    raw = sys.stdin.read() if str(source) == "-" else source.read_text()
    try:
        requests = parse_tool_calls(raw)
    except ToolCallParseError as exc:
        styled_echo(f"❌ {exc}")
        raise typer.Exit(code=2) from exc
    context = _load_context(passphrase)
    results = asyncio.run(_run_calls(context, requests))
    typer.echo(json.dumps([result.to_message() for result in results], indent=2, ensure_ascii=False, default=str))
    if not all(result.ok for result in results):
        raise typer.Exit(code=1)


@config_app.command("init")
def config_init() -> None:
    """Write a default config file if none exists."""
    context = _manager().ensure()
    styled_echo(f"Config directory: {_manager().config_dir}")
    styled_echo(f"Default timeout: {context.config.default_timeout_seconds:g}s")


@config_app.command("show")
def config_show(
    passphrase: Optional[str] = typer.Option(  # noqa: B008
        None, "--passphrase", envvar="TOOLRELAY_PASSPHRASE", help="Passphrase for stored worker keys"
    ),
) -> None:
    """Print the effective configuration. Keys are reported, never shown."""
    context = _load_context(passphrase)
    payload = context.config.model_dump()
    payload["worker_keys"] = {
        worker: "configured" if worker in context.worker_keys else "missing" for worker in sorted(WORKER_KEY_ENV)
    }
    typer.echo(json.dumps(payload, indent=2))


@config_app.command("set-key")
def config_set_key(
    worker: str = typer.Argument(..., help="Worker name: search or code_exec"),  # noqa: B008
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key (prompted when omitted)"),  # noqa: B008
    passphrase: Optional[str] = typer.Option(  # noqa: B008
        None, "--passphrase", envvar="TOOLRELAY_PASSPHRASE", help="Passphrase protecting stored keys"
    ),
) -> None:
    """Encrypt and store an API key for a worker."""
    if api_key is None:
        api_key = typer.prompt(f"{worker} API key", hide_input=True)
    if passphrase is None:
        passphrase = typer.prompt("Credentials passphrase", hide_input=True, confirmation_prompt=True)
    try:
        _manager().set_worker_key(worker, api_key, passphrase=passphrase)
    except ConfigurationError as exc:
        styled_echo(f"❌ {exc}")
        raise typer.Exit(code=1) from exc
    styled_echo(f"✅ Stored API key for worker '{worker}'.")


@app.command()
def version() -> None:
    """Show CLI version."""
    try:
        pkg_version = metadata.version("toolrelay")
    except metadata.PackageNotFoundError:
        pkg_version = "0.0.0"
    styled_echo(f"toolrelay version {pkg_version}")


def main() -> None:
    """Console script entrypoint."""
    app()


__all__ = ["app", "main", "styled_echo"]
