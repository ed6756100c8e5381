"""CodeClaw configuration: Pydantic model, load, and save."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr, field_validator

from codeclaw.core.constants import (
    CODECLAW_DIR_NAME,
    CONFIG_FILENAME,
    DEFAULT_APPROVAL_TIMEOUT_SECONDS,
    LOG_FILENAME,
    MAX_APPROVAL_TIMEOUT_SECONDS,
    MIN_APPROVAL_TIMEOUT_SECONDS,
    STATE_FILENAME,
)
from codeclaw.core.exceptions import ConfigError, ConfigNotFoundError


def codeclaw_dir() -> Path:
    """Return the CodeClaw data directory (~/.codeclaw), creating it if needed."""
    d = Path.home() / CODECLAW_DIR_NAME
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class TelegramConfig(BaseModel):
    bot_token: SecretStr
    allowed_users: list[int] = Field(default_factory=list)  # empty → anyone

    @field_validator("bot_token", mode="before")
    @classmethod
    def validate_token_format(cls, v: Any) -> Any:
        token = str(v.get_secret_value() if hasattr(v, "get_secret_value") else v)
        if not re.fullmatch(r"\d{8,12}:[A-Za-z0-9_\-]{35,}", token):
            raise ValueError(
                "Invalid Telegram bot token format. "
                "Expected: <digits>:<35+ chars>. Get one from @BotFather."
            )
        return v

    @field_validator("allowed_users", mode="before")
    @classmethod
    def parse_allowed_users(cls, v: Any) -> Any:
        """Accept both list and comma-separated string."""
        if isinstance(v, str):
            return [int(uid.strip()) for uid in v.split(",") if uid.strip()]
        return v


class AgentConfig(BaseModel):
    working_dir: str = ""  # empty → process cwd
    permission_mode: str = "default"

    @field_validator("permission_mode")
    @classmethod
    def validate_permission_mode(cls, v: str) -> str:
        # bypassPermissions would skip the approval round-trip entirely
        allowed = {"default", "acceptEdits", "plan"}
        if v not in allowed:
            raise ValueError(f"permission_mode must be one of: {sorted(allowed)}")
        return v

    @property
    def resolved_working_dir(self) -> Path:
        if self.working_dir:
            return Path(self.working_dir).expanduser().resolve()
        return Path.cwd()


class ApprovalsConfig(BaseModel):
    timeout_seconds: int = DEFAULT_APPROVAL_TIMEOUT_SECONDS

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if not (MIN_APPROVAL_TIMEOUT_SECONDS <= v <= MAX_APPROVAL_TIMEOUT_SECONDS):
            raise ValueError(
                f"timeout_seconds must be between {MIN_APPROVAL_TIMEOUT_SECONDS} "
                f"and {MAX_APPROVAL_TIMEOUT_SECONDS}"
            )
        return v


class SessionsConfig(BaseModel):
    persist: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class CodeClawConfig(BaseModel):
    """Root CodeClaw configuration model."""

    telegram: TelegramConfig
    agent: AgentConfig = Field(default_factory=AgentConfig)
    approvals: ApprovalsConfig = Field(default_factory=ApprovalsConfig)
    sessions: SessionsConfig = Field(default_factory=SessionsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Computed paths (not stored in config file)
    _config_path: Path | None = None

    @property
    def state_path(self) -> Path:
        return codeclaw_dir() / STATE_FILENAME

    @property
    def log_path(self) -> Path:
        return codeclaw_dir() / LOG_FILENAME


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def _config_file_path() -> Path:
    if env_path := os.environ.get("CODECLAW_CONFIG"):
        return Path(env_path)
    return codeclaw_dir() / CONFIG_FILENAME


def load_config(path: Path | None = None) -> CodeClawConfig:
    """
    Load CodeClawConfig from TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (CODECLAW_*)
      2. Config file (~/.codeclaw/config.toml)

    A missing config file is accepted when the bot token is provided
    through the environment.
    """
    import tomllib

    cfg_path = path or _config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif not os.environ.get("CODECLAW_TELEGRAM_BOT_TOKEN"):
        raise ConfigNotFoundError(
            f"CodeClaw is not configured. Create {cfg_path} or set "
            f"CODECLAW_TELEGRAM_BOT_TOKEN.\n(Config file not found: {cfg_path})"
        )

    _apply_env_overrides(data)

    try:
        config = CodeClawConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc

    config._config_path = cfg_path
    return config


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay CODECLAW_* environment variables onto the parsed TOML data."""
    if token := os.environ.get("CODECLAW_TELEGRAM_BOT_TOKEN"):
        data.setdefault("telegram", {})["bot_token"] = token
    if users := os.environ.get("CODECLAW_ALLOWED_USERS"):
        data.setdefault("telegram", {})["allowed_users"] = users
    if working_dir := os.environ.get("CODECLAW_WORKING_DIR"):
        data.setdefault("agent", {})["working_dir"] = working_dir
    if timeout := os.environ.get("CODECLAW_APPROVAL_TIMEOUT_SECONDS"):
        data.setdefault("approvals", {})["timeout_seconds"] = timeout
    if level := os.environ.get("CODECLAW_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to TOML file with secure permissions (0600)."""
    import tomli_w

    cfg_path = path or _config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    # Write atomically
    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
