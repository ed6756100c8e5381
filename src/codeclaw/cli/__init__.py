"""
codeclaw.cli — Click-based CLI entry point and command handlers.

Commands:
    start       Run the CodeClaw daemon in the foreground
    config      Show and validate configuration
    version     Show version information
"""
