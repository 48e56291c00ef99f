"""Configuration and worker credential management for toolrelay."""

from __future__ import annotations

import base64
import json
import logging
import os
import tomllib
from collections.abc import Callable
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import tomli_w
import typer
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(os.environ.get("TOOLRELAY_HOME", Path.home() / ".toolrelay"))
CONFIG_FILENAME = "config.toml"
CREDENTIALS_FILENAME = "credentials.json"
PBKDF_ITERATIONS = 390_000
PASSPHRASE_ENV = "TOOLRELAY_PASSPHRASE"

WORKER_KEY_ENV = {
    "search": "TOOLRELAY_SEARCH_API_KEY",
    "code_exec": "TOOLRELAY_CODE_EXEC_API_KEY",
}


class ConfigurationError(RuntimeError):
    """Raised when configuration or credential loading fails."""


class ToolRelayConfig(BaseModel):
    """Persisted toolrelay settings."""

    config_version: int = 1
    default_timeout_seconds: float = Field(default=30.0, gt=0)
    execution_timeout_seconds: float = Field(default=120.0, gt=0)
    timeout_grace_seconds: float = Field(default=0.5, ge=0)
    tool_timeouts: dict[str, float] | None = None
    search_base_url: str = "https://api.tavily.com"
    search_max_results: int = Field(default=5, ge=1)
    code_exec_base_url: str = "http://localhost:8000"
    code_exec_language: str = "python"
    worker_max_retries: int = Field(default=2, ge=0)
    worker_retry_backoff: float = Field(default=1.5, gt=0)
    log_buffer_size: int = Field(default=200, ge=1)


@dataclass
class ConfigContext:
    """Represents loaded configuration and decrypted worker keys."""

    config: ToolRelayConfig
    worker_keys: dict[str, str] = field(default_factory=dict)
    passphrase: str | None = None


class CredentialStore:
    """Encrypts/decrypts worker API keys using a passphrase-derived key."""

    def __init__(self, credentials_path: Path) -> None:
        self.credentials_path = credentials_path

    def exists(self) -> bool:
        return self.credentials_path.exists()

    def save(self, passphrase: str, keys: dict[str, str]) -> None:
        salt = os.urandom(16)
        fernet = Fernet(self._derive_key(passphrase, salt))
        payload = {
            "salt": base64.b64encode(salt).decode("ascii"),
            "iterations": PBKDF_ITERATIONS,
            "keys": {
                name: base64.b64encode(fernet.encrypt(value.encode("utf-8"))).decode("ascii")
                for name, value in sorted(keys.items())
            },
        }
        self.credentials_path.write_text(json.dumps(payload, indent=2))
        try:
            os.chmod(self.credentials_path, 0o600)
        except PermissionError:
            pass

    def load(self, passphrase: str) -> dict[str, str]:
        try:
            data = json.loads(self.credentials_path.read_text())
            salt = base64.b64decode(data["salt"])
            iterations = int(data.get("iterations", PBKDF_ITERATIONS))
            encrypted = data.get("keys") or {}
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise ConfigurationError(f"Corrupt credentials file at {self.credentials_path}: {exc}") from exc
        fernet = Fernet(self._derive_key(passphrase, salt, iterations=iterations))
        keys: dict[str, str] = {}
        for name, token in encrypted.items():
            try:
                keys[name] = fernet.decrypt(base64.b64decode(token)).decode("utf-8")
            except InvalidToken as exc:
                raise ConfigurationError("Invalid passphrase for toolrelay credentials") from exc
            except (ValueError, TypeError) as exc:
                raise ConfigurationError(f"Corrupt credentials file at {self.credentials_path}: {exc}") from exc
        return keys

    @staticmethod
    def _derive_key(passphrase: str, salt: bytes, *, iterations: int = PBKDF_ITERATIONS) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=iterations,
        )
        return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


class ConfigManager:
    """Handles loading and persisting toolrelay configuration."""

    def __init__(
        self,
        config_dir: Path | None = None,
        echo_fn: Callable[[str], None] | None = None,
        project_config_path: Path | None = None,
        override_config_path: Path | None = None,
    ) -> None:
        self.config_dir = config_dir or DEFAULT_CONFIG_DIR
        self.config_path = self.config_dir / CONFIG_FILENAME
        self.credentials_path = self.config_dir / CREDENTIALS_FILENAME
        self._credential_store = CredentialStore(self.credentials_path)
        self._echo = echo_fn or typer.echo
        self.project_config_path = project_config_path
        self.override_config_path = override_config_path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def ensure(self, *, passphrase: str | None = None) -> ConfigContext:
        """Write a default config when none exists; return the loaded context."""

        if not self.config_path.exists():
            self.config_dir.mkdir(parents=True, exist_ok=True)
            self._save_config(ToolRelayConfig())
            self._echo("✅ toolrelay configuration saved to " + str(self.config_path))
        return self.load(passphrase=passphrase)

    def load(self, *, passphrase: str | None = None) -> ConfigContext:
        """Load layered configuration and resolve worker API keys.

        Keys from the environment win over stored ones. Stored keys are only
        decrypted when a passphrase is available; without one the affected
        workers report themselves unavailable at call time.
        """

        config = self._load_config()
        keys: dict[str, str] = {}
        used_passphrase = passphrase or os.environ.get(PASSPHRASE_ENV)
        if self._credential_store.exists():
            if used_passphrase:
                keys.update(self._credential_store.load(used_passphrase))
            else:
                logger.debug("Stored worker credentials present but no passphrase supplied")
        for worker, env_name in WORKER_KEY_ENV.items():
            value = os.environ.get(env_name)
            if value:
                keys[worker] = value
        return ConfigContext(config=config, worker_keys=keys, passphrase=used_passphrase)

    def update(self, **updates: object) -> ToolRelayConfig:
        """Persist ``updates`` into the global config file."""

        current = self._read_config_dict(self.config_path)
        current = current.copy() if current else {}
        current.update({key: value for key, value in updates.items() if value is not None})
        try:
            config = ToolRelayConfig(**current)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._save_config(config)
        return config

    def set_worker_key(self, worker: str, api_key: str, *, passphrase: str) -> None:
        """Encrypt and store ``api_key`` for ``worker``."""

        if worker not in WORKER_KEY_ENV:
            known = ", ".join(sorted(WORKER_KEY_ENV))
            raise ConfigurationError(f"Unknown worker '{worker}'. Known workers: {known}")
        if not api_key:
            raise ConfigurationError("API key must not be empty")
        keys: dict[str, str] = {}
        if self._credential_store.exists():
            keys = self._credential_store.load(passphrase)
        keys[worker] = api_key
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._credential_store.save(passphrase, keys)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_config(self) -> ToolRelayConfig:
        data: dict[str, Any] = self._read_config_dict(self.config_path)
        if self.project_config_path:
            data = self._merge_dicts(data, self._read_config_dict(self.project_config_path))
        if self.override_config_path:
            data = self._merge_dicts(data, self._read_config_dict(self.override_config_path))
        try:
            return ToolRelayConfig(**data)
        except ValidationError as exc:
            raise ConfigurationError(str(exc)) from exc

    def _save_config(self, config: ToolRelayConfig) -> None:
        self.config_path.write_text(tomli_w.dumps(config.model_dump(exclude_none=True)))

    def _read_config_dict(self, path: Path | None) -> dict[str, Any]:
        if path is None:
            return {}
        if not path.exists():
            return {}
        try:
            return tomllib.loads(path.read_text())
        except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
            raise ConfigurationError(f"Failed to load config from {path}: {exc}") from exc

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        result = deepcopy(base)
        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_dicts(result[key], value)
            else:
                result[key] = value
        return result


__all__ = [
    "ConfigContext",
    "ConfigManager",
    "ConfigurationError",
    "CredentialStore",
    "ToolRelayConfig",
    "DEFAULT_CONFIG_DIR",
    "CONFIG_FILENAME",
    "CREDENTIALS_FILENAME",
    "WORKER_KEY_ENV",
]
