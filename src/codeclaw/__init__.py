"""
CodeClaw — drive a coding agent from your phone.

CodeClaw runs a coding agent against a local working directory on behalf of
a chat conversation. Whenever the agent wants to take a sensitive action
such as editing a file, CodeClaw sends a permission prompt to the chat.
You reply to that prompt, CodeClaw relays the decision back to the agent,
and execution resumes.

Package layout (src/codeclaw/):
  core/       — config, approvals, bridge, runner, router, file browser, daemon
  channels/   — messaging channels (Telegram)
  cli/        — Click CLI entry point
"""

__version__ = "0.3.0"
__all__ = ["__version__"]
