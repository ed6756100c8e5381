"""CodeClaw exception hierarchy."""

from __future__ import annotations


class CodeClawError(Exception):
    """Base exception for all CodeClaw errors."""


class ConfigError(CodeClawError):
    """Raised when the configuration is invalid or cannot be read."""


class ConfigNotFoundError(ConfigError):
    """Raised when the configuration file does not exist."""


class ChannelError(CodeClawError):
    """Raised when a messaging channel fails to send or receive."""


class ChannelAuthError(ChannelError):
    """Raised when the channel credentials are rejected. Fatal for the daemon."""


class EngineError(CodeClawError):
    """Raised when the task engine fails outside of a reported result."""


class SessionError(CodeClawError):
    """Raised when the session state file cannot be read or written."""
