"""
Tests for CodeClawConfig loading.

Covers:
  - TOML file parsing and defaults
  - CODECLAW_* environment overrides (env wins over file)
  - Env-only configuration without a file
  - Validation errors surface as ConfigError
  - save_config writes a 0600 file that load_config reads back
"""

from __future__ import annotations

import stat

import pytest

from codeclaw.core.config import CodeClawConfig, load_config, save_config
from codeclaw.core.constants import DEFAULT_APPROVAL_TIMEOUT_SECONDS
from codeclaw.core.exceptions import ConfigError, ConfigNotFoundError

_TOKEN = "123456789:ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghi"
_OTHER_TOKEN = "987654321:ZYXWVUTSRQPONMLKJIHGFEDCBAzyxwvutsr"

_ENV_VARS = (
    "CODECLAW_CONFIG",
    "CODECLAW_TELEGRAM_BOT_TOKEN",
    "CODECLAW_ALLOWED_USERS",
    "CODECLAW_WORKING_DIR",
    "CODECLAW_APPROVAL_TIMEOUT_SECONDS",
    "CODECLAW_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


def _write(path, body: str):
    path.write_text(body, encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# File loading
# ---------------------------------------------------------------------------


class TestLoadFile:
    def test_minimal_file_uses_defaults(self, tmp_path) -> None:
        cfg_path = _write(tmp_path / "config.toml", f'[telegram]\nbot_token = "{_TOKEN}"\n')
        cfg = load_config(cfg_path)

        assert cfg.telegram.bot_token.get_secret_value() == _TOKEN
        assert cfg.telegram.allowed_users == []
        assert cfg.agent.permission_mode == "default"
        assert cfg.approvals.timeout_seconds == DEFAULT_APPROVAL_TIMEOUT_SECONDS
        assert cfg.sessions.persist is False
        assert cfg.logging.level == "INFO"

    def test_full_file(self, tmp_path) -> None:
        cfg_path = _write(
            tmp_path / "config.toml",
            f"""
[telegram]
bot_token = "{_TOKEN}"
allowed_users = [42, 43]

[agent]
working_dir = "{tmp_path}"
permission_mode = "acceptEdits"

[approvals]
timeout_seconds = 300

[sessions]
persist = true

[logging]
level = "debug"
format = "json"
""",
        )
        cfg = load_config(cfg_path)
        assert cfg.telegram.allowed_users == [42, 43]
        assert cfg.agent.resolved_working_dir == tmp_path.resolve()
        assert cfg.agent.permission_mode == "acceptEdits"
        assert cfg.approvals.timeout_seconds == 300
        assert cfg.sessions.persist is True
        assert cfg.logging.level == "DEBUG"
        assert cfg.logging.format == "json"

    def test_missing_file_without_env(self, tmp_path) -> None:
        with pytest.raises(ConfigNotFoundError):
            load_config(tmp_path / "absent.toml")

    def test_malformed_toml(self, tmp_path) -> None:
        cfg_path = _write(tmp_path / "config.toml", "[telegram\nbot_token=")
        with pytest.raises(ConfigError):
            load_config(cfg_path)

    def test_config_path_from_env(self, tmp_path, monkeypatch) -> None:
        cfg_path = _write(tmp_path / "alt.toml", f'[telegram]\nbot_token = "{_TOKEN}"\n')
        monkeypatch.setenv("CODECLAW_CONFIG", str(cfg_path))
        assert load_config()._config_path == cfg_path


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestEnvOverrides:
    def test_env_only(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("CODECLAW_TELEGRAM_BOT_TOKEN", _TOKEN)
        monkeypatch.setenv("CODECLAW_ALLOWED_USERS", "42, 43")
        monkeypatch.setenv("CODECLAW_WORKING_DIR", str(tmp_path))
        monkeypatch.setenv("CODECLAW_APPROVAL_TIMEOUT_SECONDS", "60")
        monkeypatch.setenv("CODECLAW_LOG_LEVEL", "warning")

        cfg = load_config(tmp_path / "absent.toml")
        assert cfg.telegram.allowed_users == [42, 43]
        assert cfg.agent.resolved_working_dir == tmp_path.resolve()
        assert cfg.approvals.timeout_seconds == 60
        assert cfg.logging.level == "WARNING"

    def test_env_wins_over_file(self, tmp_path, monkeypatch) -> None:
        cfg_path = _write(
            tmp_path / "config.toml",
            f'[telegram]\nbot_token = "{_TOKEN}"\nallowed_users = [1]\n',
        )
        monkeypatch.setenv("CODECLAW_TELEGRAM_BOT_TOKEN", _OTHER_TOKEN)
        cfg = load_config(cfg_path)
        assert cfg.telegram.bot_token.get_secret_value() == _OTHER_TOKEN
        assert cfg.telegram.allowed_users == [1]

    def test_non_integer_timeout_is_config_error(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("CODECLAW_TELEGRAM_BOT_TOKEN", _TOKEN)
        monkeypatch.setenv("CODECLAW_APPROVAL_TIMEOUT_SECONDS", "2m")
        with pytest.raises(ConfigError, match="timeout_seconds"):
            load_config(tmp_path / "absent.toml")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    @pytest.mark.parametrize("token", ["", "not-a-token", "123:short", "abc:" + "x" * 40])
    def test_bad_token(self, token: str) -> None:
        with pytest.raises(ValueError):
            CodeClawConfig.model_validate({"telegram": {"bot_token": token}})

    @pytest.mark.parametrize("timeout", [0, 9, 3601])
    def test_timeout_bounds(self, timeout: int) -> None:
        with pytest.raises(ValueError):
            CodeClawConfig.model_validate(
                {"telegram": {"bot_token": _TOKEN}, "approvals": {"timeout_seconds": timeout}}
            )

    def test_bypass_permission_mode_rejected(self) -> None:
        with pytest.raises(ValueError):
            CodeClawConfig.model_validate(
                {
                    "telegram": {"bot_token": _TOKEN},
                    "agent": {"permission_mode": "bypassPermissions"},
                }
            )

    def test_invalid_file_is_config_error(self, tmp_path) -> None:
        cfg_path = _write(
            tmp_path / "config.toml",
            f'[telegram]\nbot_token = "{_TOKEN}"\n[logging]\nformat = "xml"\n',
        )
        with pytest.raises(ConfigError):
            load_config(cfg_path)

    def test_secret_not_in_repr(self) -> None:
        cfg = CodeClawConfig.model_validate({"telegram": {"bot_token": _TOKEN}})
        assert _TOKEN not in repr(cfg)


# ---------------------------------------------------------------------------
# save_config
# ---------------------------------------------------------------------------


class TestSaveConfig:
    def test_round_trip_and_permissions(self, tmp_path) -> None:
        path = save_config(
            {"telegram": {"bot_token": _TOKEN, "allowed_users": [5]}},
            tmp_path / "cfg" / "config.toml",
        )
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert load_config(path).telegram.allowed_users == [5]
