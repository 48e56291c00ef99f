import json
from pathlib import Path
from typing import Any

import pytest
import tomli_w
import tomllib

from toolrelay.core.config import (
    CONFIG_FILENAME,
    CREDENTIALS_FILENAME,
    ConfigContext,
    ConfigManager,
    ConfigurationError,
    ToolRelayConfig,
)


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TOOLRELAY_PASSPHRASE", "TOOLRELAY_SEARCH_API_KEY", "TOOLRELAY_CODE_EXEC_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def make_manager(tmp_path: Path, **kwargs: Any) -> ConfigManager:
    messages: list[str] = []
    return ConfigManager(config_dir=tmp_path, echo_fn=messages.append, **kwargs)


def test_ensure_writes_defaults(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    context = manager.ensure()

    assert isinstance(context, ConfigContext)
    assert context.config.default_timeout_seconds == 30
    assert context.config.execution_timeout_seconds == 120
    assert context.config.timeout_grace_seconds == 0.5
    assert context.worker_keys == {}
    stored = tomllib.loads((tmp_path / CONFIG_FILENAME).read_text())
    assert stored["search_base_url"] == "https://api.tavily.com"
    assert "tool_timeouts" not in stored


def test_load_without_config_file_uses_defaults(tmp_path: Path) -> None:
    context = make_manager(tmp_path).load()
    assert context.config == ToolRelayConfig()
    assert not (tmp_path / CONFIG_FILENAME).exists()


def test_worker_keys_are_encrypted_at_rest(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-secret-value", passphrase="passphrase")
    manager.set_worker_key("code_exec", "exec-secret", passphrase="passphrase")

    raw = (tmp_path / CREDENTIALS_FILENAME).read_text()
    assert "tvly-secret-value" not in raw
    assert set(json.loads(raw)["keys"]) == {"code_exec", "search"}

    context = make_manager(tmp_path).load(passphrase="passphrase")
    assert context.worker_keys == {"search": "tvly-secret-value", "code_exec": "exec-secret"}
    assert context.passphrase == "passphrase"


def test_wrong_passphrase_is_rejected(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-secret-value", passphrase="right")

    with pytest.raises(ConfigurationError):
        manager.load(passphrase="wrong")
    with pytest.raises(ConfigurationError):
        manager.set_worker_key("code_exec", "x", passphrase="wrong")


@pytest.mark.parametrize("token", ["abc", 5, None])
def test_corrupt_stored_key_raises_configuration_error(tmp_path: Path, token: Any) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-secret-value", passphrase="passphrase")
    path = tmp_path / CREDENTIALS_FILENAME
    data = json.loads(path.read_text())
    data["keys"]["search"] = token
    path.write_text(json.dumps(data))

    with pytest.raises(ConfigurationError, match="Corrupt credentials"):
        make_manager(tmp_path).load(passphrase="passphrase")

def test_stored_keys_are_skipped_without_passphrase(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-secret-value", passphrase="right")

    context = manager.load()
    assert context.worker_keys == {}


def test_passphrase_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-secret-value", passphrase="right")
    monkeypatch.setenv("TOOLRELAY_PASSPHRASE", "right")

    assert manager.load().worker_keys == {"search": "tvly-secret-value"}


def test_environment_keys_override_stored_keys(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = make_manager(tmp_path)
    manager.set_worker_key("search", "tvly-stored", passphrase="right")
    monkeypatch.setenv("TOOLRELAY_SEARCH_API_KEY", "tvly-from-env")
    monkeypatch.setenv("TOOLRELAY_CODE_EXEC_API_KEY", "exec-from-env")

    context = manager.load(passphrase="right")
    assert context.worker_keys == {"search": "tvly-from-env", "code_exec": "exec-from-env"}


def test_unknown_worker_or_empty_key_is_rejected(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    with pytest.raises(ConfigurationError):
        manager.set_worker_key("weather", "key", passphrase="p")
    with pytest.raises(ConfigurationError):
        manager.set_worker_key("search", "", passphrase="p")


def test_config_layers_merge_global_project_override(tmp_path: Path) -> None:
    global_dir = tmp_path / "global"
    global_dir.mkdir()
    (global_dir / CONFIG_FILENAME).write_text(
        tomli_w.dumps({"default_timeout_seconds": 20, "tool_timeouts": {"searchWeb": 5, "executeCode": 90}})
    )
    project_path = tmp_path / "project.toml"
    project_path.write_text(tomli_w.dumps({"tool_timeouts": {"searchWeb": 8}, "search_max_results": 3}))
    override_path = tmp_path / "override.toml"
    override_path.write_text(tomli_w.dumps({"default_timeout_seconds": 12}))

    manager = ConfigManager(
        config_dir=global_dir,
        echo_fn=lambda message: None,
        project_config_path=project_path,
        override_config_path=override_path,
    )
    config = manager.load().config

    assert config.default_timeout_seconds == 12
    assert config.search_max_results == 3
    assert config.tool_timeouts == {"searchWeb": 8, "executeCode": 90}


def test_invalid_values_raise_configuration_error(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text(tomli_w.dumps({"default_timeout_seconds": -1}))
    with pytest.raises(ConfigurationError):
        make_manager(tmp_path).load()


def test_malformed_toml_raises_configuration_error(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_text("default_timeout_seconds = = 3")
    with pytest.raises(ConfigurationError):
        make_manager(tmp_path).load()


def test_non_utf8_config_raises_configuration_error(tmp_path: Path) -> None:
    (tmp_path / CONFIG_FILENAME).write_bytes(b"default_timeout_seconds = 3\n# \xff\xfe\n")
    with pytest.raises(ConfigurationError, match="Failed to load config"):
        make_manager(tmp_path).load()


def test_update_persists_values(tmp_path: Path) -> None:
    manager = make_manager(tmp_path)
    manager.ensure()
    updated = manager.update(search_base_url="https://search.internal", worker_max_retries=0)

    assert updated.search_base_url == "https://search.internal"
    reloaded = make_manager(tmp_path).load().config
    assert reloaded.worker_max_retries == 0
    with pytest.raises(ConfigurationError):
        manager.update(log_buffer_size=0)
