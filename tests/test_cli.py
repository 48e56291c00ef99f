from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from toolrelay.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TOOLRELAY_PASSPHRASE", "TOOLRELAY_SEARCH_API_KEY", "TOOLRELAY_CODE_EXEC_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_version_command_runs() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "toolrelay version" in result.stdout


def test_tools_json_lists_builtin_toolkits() -> None:
    result = runner.invoke(app, ["tools", "--format", "json"])
    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    tools = {tool["name"] for toolkit in payload for tool in toolkit["tools"]}
    assert tools == {"searchWeb", "executeCode"}


def test_tools_openai_format() -> None:
    result = runner.invoke(app, ["tools", "--format", "openai"])
    assert result.exit_code == 0
    specs = json.loads(result.stdout)
    assert [spec["function"]["name"] for spec in specs] == ["searchWeb", "executeCode"]


def test_tools_table_format() -> None:
    result = runner.invoke(app, ["tools"])
    assert result.exit_code == 0
    assert "searchWeb" in result.stdout
    assert "executeCode" in result.stdout


def test_tools_unknown_format_fails() -> None:
    result = runner.invoke(app, ["tools", "--format", "xml"])
    assert result.exit_code == 2


def test_dispatch_unknown_tool(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "dispatch", "searchTheWeb", "{}"])
    assert result.exit_code == 1
    message = json.loads(result.stdout)
    assert message["status"] == "error"
    assert message["data"]["reason"] == "unknown_tool"


def test_dispatch_invalid_arguments(tmp_path: Path) -> None:
    result = runner.invoke(
        app, ["--config-dir", str(tmp_path), "dispatch", "searchWeb", '{"query": 5}', "--call-id", "c-9"]
    )
    assert result.exit_code == 1
    message = json.loads(result.stdout)
    assert message["call_id"] == "c-9"
    assert message["data"]["reason"] == "validation_error"
    assert "query" in message["data"]["detail"]


def test_dispatch_without_worker_key_is_unavailable(tmp_path: Path) -> None:
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "dispatch", "searchWeb", '{"query": "news"}'])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["data"]["reason"] == "worker_unavailable"


def test_dispatch_success(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer tvly-env-key-0000"
        return httpx.Response(200, json={"results": [{"title": "T", "url": "https://t.test", "content": "S"}]})

    monkeypatch.setattr(httpx, "AsyncClient", lambda **kwargs: real_client(transport=httpx.MockTransport(handler)))
    monkeypatch.setenv("TOOLRELAY_SEARCH_API_KEY", "tvly-env-key-0000")

    result = runner.invoke(app, ["--config-dir", str(tmp_path), "dispatch", "searchWeb", '{"query": "news"}'])
    assert result.exit_code == 0, result.stdout
    message = json.loads(result.stdout)
    assert message["status"] == "success"
    assert message["data"]["results"] == [{"title": "T", "url": "https://t.test", "snippet": "S"}]


def test_batch_keeps_request_order(tmp_path: Path) -> None:
    calls = tmp_path / "calls.json"
    calls.write_text(
        json.dumps(
            [
                {"id": "1", "name": "searchWeb", "arguments": {}},
                {"id": "2", "name": "missingTool", "arguments": {}},
            ]
        )
    )
    result = runner.invoke(app, ["--config-dir", str(tmp_path), "batch", str(calls)])
    assert result.exit_code == 1
    messages = json.loads(result.stdout)
    assert [message["call_id"] for message in messages] == ["1", "2"]
    assert [message["data"]["reason"] for message in messages] == ["validation_error", "unknown_tool"]


def test_config_init_and_show(tmp_path: Path) -> None:
    init = runner.invoke(app, ["--config-dir", str(tmp_path), "config", "init"])
    assert init.exit_code == 0
    assert (tmp_path / "config.toml").exists()

    show = runner.invoke(app, ["--config-dir", str(tmp_path), "config", "show"])
    assert show.exit_code == 0
    payload = json.loads(show.stdout)
    assert payload["default_timeout_seconds"] == 30
    assert payload["worker_keys"] == {"code_exec": "missing", "search": "missing"}


def test_config_set_key_then_show(tmp_path: Path) -> None:
    stored = runner.invoke(
        app,
        [
            "--config-dir",
            str(tmp_path),
            "config",
            "set-key",
            "search",
            "--api-key",
            "tvly-stored-key-1234",
            "--passphrase",
            "passphrase",
        ],
    )
    assert stored.exit_code == 0
    assert "Stored API key" in stored.stdout

    show = runner.invoke(
        app, ["--config-dir", str(tmp_path), "config", "show", "--passphrase", "passphrase"]
    )
    assert show.exit_code == 0
    assert "tvly-stored-key-1234" not in show.stdout
    assert json.loads(show.stdout)["worker_keys"]["search"] == "configured"

    wrong = runner.invoke(app, ["--config-dir", str(tmp_path), "config", "show", "--passphrase", "nope"])
    assert wrong.exit_code == 1


def test_config_set_key_unknown_worker(tmp_path: Path) -> None:
    result = runner.invoke(
        app,
        ["--config-dir", str(tmp_path), "config", "set-key", "weather", "--api-key", "k", "--passphrase", "p"],
    )
    assert result.exit_code == 1
    assert "Unknown worker" in result.stdout
