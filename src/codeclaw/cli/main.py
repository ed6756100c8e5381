"""
CodeClaw CLI entry point.

Commands:
  codeclaw start             — run the daemon in the foreground
  codeclaw config init       — write a new config file
  codeclaw config show       — display the current configuration
  codeclaw config validate   — validate the configuration
  codeclaw version           — show version information
"""

from __future__ import annotations

import click
from rich.console import Console

from codeclaw import __version__
from codeclaw.cli._config_cmd import config_group

console = Console()


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(__version__, "--version", "-V", message="codeclaw %(version)s")
def cli() -> None:
    """CodeClaw — drive a coding agent from your phone."""


cli.add_command(config_group)


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--cwd", default="", help="Default working directory for the agent")
@click.option("--log-level", default="", help="Override the configured log level")
def start(cwd: str, log_level: str) -> None:
    """Run the CodeClaw daemon in the foreground."""
    from codeclaw.cli._start import cmd_start

    cmd_start(cwd=cwd, log_level=log_level, console=console)


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False)
def version(as_json: bool) -> None:
    """Show version information."""
    import platform
    import sys as _sys

    if as_json:
        import json

        click.echo(
            json.dumps(
                {
                    "codeclaw": __version__,
                    "python": _sys.version.split()[0],
                    "platform": _sys.platform,
                    "arch": platform.machine(),
                },
                indent=2,
            )
        )
    else:
        console.print(f"codeclaw {__version__}")
        console.print(f"Python {_sys.version.split()[0]}")
        console.print(f"Platform: {_sys.platform} {platform.machine()}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
