"""codeclaw start — run the daemon in the foreground."""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING

from rich.console import Console

from codeclaw.core.constants import ExitCode

if TYPE_CHECKING:
    from codeclaw.core.config import CodeClawConfig


def cmd_start(cwd: str, log_level: str, console: Console) -> None:
    """Load config, configure logging, and run the daemon until interrupted."""
    from codeclaw.core.config import load_config
    from codeclaw.core.exceptions import (
        ChannelAuthError,
        ChannelError,
        ConfigError,
        ConfigNotFoundError,
    )
    from codeclaw.core.logging import configure_logging

    try:
        config = load_config()
    except ConfigNotFoundError as exc:
        console.print(f"[red]Not configured:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)
    except ConfigError as exc:
        console.print(f"[red]Config error:[/red] {exc}")
        sys.exit(ExitCode.CONFIG_ERROR)

    if cwd:
        config.agent.working_dir = cwd
    if not config.agent.resolved_working_dir.is_dir():
        console.print(f"[red]Working directory not found:[/red] {config.agent.resolved_working_dir}")
        sys.exit(ExitCode.CONFIG_ERROR)

    configure_logging(
        level=log_level or config.logging.level,
        fmt=config.logging.format,
        log_path=config.log_path,
    )

    allowed = config.telegram.allowed_users
    console.print(
        f"[bold]CodeClaw[/bold] working directory: "
        f"[cyan]{config.agent.resolved_working_dir}[/cyan]"
    )
    console.print(f"Allowed users: {', '.join(map(str, allowed)) if allowed else 'all'}")
    console.print("Press Ctrl+C to stop.\n")

    try:
        asyncio.run(_run_async(config))
    except ChannelAuthError as exc:
        console.print(f"[red]Channel authentication failed:[/red] {exc}")
        sys.exit(ExitCode.AUTH_ERROR)
    except ChannelError as exc:
        console.print(f"[red]Cannot reach Telegram:[/red] {exc}")
        sys.exit(ExitCode.NETWORK_ERROR)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        sys.exit(ExitCode.SUCCESS)


async def _run_async(config: CodeClawConfig) -> None:
    from codeclaw.channels.telegram import TelegramChannel
    from codeclaw.core.daemon import Daemon
    from codeclaw.core.engine import ClaudeAgentEngine

    channel = TelegramChannel(
        bot_token=config.telegram.bot_token.get_secret_value(),
        allowed_user_ids=config.telegram.allowed_users,
    )
    engine = ClaudeAgentEngine(permission_mode=config.agent.permission_mode)
    daemon = Daemon(config, channel, engine)
    await daemon.start()
