"""CLI commands: codeclaw config init | show | validate."""

from __future__ import annotations

import json
import sys

import click
from rich.console import Console

from codeclaw.core.constants import ExitCode

console = Console()


@click.group("config")
def config_group() -> None:
    """Create, view and validate CodeClaw configuration."""


@config_group.command("show")
@click.option("--json", "as_json", is_flag=True, default=False, help="Output as JSON")
@click.option("--redact/--no-redact", default=True, help="Redact secrets (default: redact)")
def config_show(as_json, redact):
    """Display the current configuration."""
    from codeclaw.core.config import _config_file_path, load_config

    cfg_path = _config_file_path()
    try:
        cfg = load_config(cfg_path)
    except Exception as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    data = _config_to_dict(cfg, redact=redact)
    data["_config_path"] = str(cfg_path)

    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        _print_config_rich(data, console)


@config_group.command("init")
@click.option("--token", default="", help="Telegram bot token (or CODECLAW_TELEGRAM_BOT_TOKEN)")
@click.option("--users", default="", help="Comma-separated Telegram user IDs allowed to chat")
@click.option("--working-dir", default="", help="Default working directory for the agent")
@click.option(
    "--persist-sessions", is_flag=True, default=False, help="Keep sessions across restarts"
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing config file")
@click.option("--non-interactive", is_flag=True, default=False, help="Never prompt")
def config_init(token, users, working_dir, persist_sessions, force, non_interactive):
    """Write a new config file (mode 0600)."""
    import os

    from codeclaw.core.config import CodeClawConfig, _config_file_path, save_config
    from codeclaw.core.exceptions import ConfigError

    cfg_path = _config_file_path()
    if cfg_path.exists() and not force:
        console.print(f"[red]Config already exists:[/red] {cfg_path} (use --force to overwrite)")
        sys.exit(ExitCode.CONFIG_ERROR)

    token = token or os.environ.get("CODECLAW_TELEGRAM_BOT_TOKEN", "")
    if not token and not non_interactive:
        console.print("Get your bot token from @BotFather on Telegram.\n")
        token = click.prompt("Telegram bot token", hide_input=True).strip()
    if not token:
        console.print("[red]No bot token provided.[/red] Pass --token or run interactively.")
        sys.exit(ExitCode.CONFIG_ERROR)

    if not users and not non_interactive:
        users = click.prompt(
            "Allowed Telegram user ID(s), comma-separated (empty for anyone)",
            default="",
            show_default=False,
        ).strip()

    config_data: dict = {"telegram": {"bot_token": token, "allowed_users": users}}
    if working_dir:
        config_data["agent"] = {"working_dir": working_dir}
    if persist_sessions:
        config_data["sessions"] = {"persist": True}

    try:
        cfg = CodeClawConfig.model_validate(config_data)
    except Exception as exc:
        console.print(f"[red]Invalid configuration:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)
    config_data["telegram"]["allowed_users"] = cfg.telegram.allowed_users

    try:
        save_config(config_data, cfg_path)
    except ConfigError as exc:
        console.print(f"[red]Failed to save config:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    console.print(f"[green]Config saved:[/green] {cfg_path}")
    console.print("Run [cyan]codeclaw start[/cyan] to connect to Telegram.")


@config_group.command("validate")
def config_validate():
    """Validate the current config (file plus environment) against the schema."""
    from codeclaw.core.config import _config_file_path, load_config

    cfg_path = _config_file_path()
    try:
        load_config(cfg_path)
        console.print(f"[green]Config is valid:[/green] {cfg_path}")
    except Exception as exc:
        console.print(f"[red]Config validation failed:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config_to_dict(cfg, redact=True):
    """Serialize CodeClawConfig to a plain dict with optional redaction."""
    token = cfg.telegram.bot_token.get_secret_value()
    return {
        "telegram": {
            "bot_token": _mask(token) if redact else token,
            "allowed_users": cfg.telegram.allowed_users,
        },
        "agent": {
            "working_dir": str(cfg.agent.resolved_working_dir),
            "permission_mode": cfg.agent.permission_mode,
        },
        "approvals": {"timeout_seconds": cfg.approvals.timeout_seconds},
        "sessions": {"persist": cfg.sessions.persist},
        "logging": {"level": cfg.logging.level, "format": cfg.logging.format},
    }


def _mask(value):
    """Mask a secret value, showing first 4 and last 4 chars."""
    if len(value) <= 12:
        return "***"
    return value[:4] + "***" + value[-4:]


def _print_config_rich(data, console):
    """Print config dict in a human-friendly format."""
    path = data.pop("_config_path", "unknown")
    console.print(f"[bold]CodeClaw Configuration[/bold]  ({path})\n")

    for section, values in data.items():
        if isinstance(values, dict):
            console.print(f"  [cyan][{section}][/cyan]")
            for k, v in values.items():
                console.print(f"    {k} = {v!r}")
        else:
            console.print(f"  {section} = {values!r}")
    console.print()
