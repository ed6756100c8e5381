"""
codeclaw.channels — messaging channels.

Channels deliver outbound text to a conversation and yield inbound messages.
The handle returned by ``send()`` is the correlation key for replies.

Available channels:
    telegram    Telegram bot (long polling)

All channels implement the abstract BaseChannel interface defined in base.py.
"""

from codeclaw.channels.base import BaseChannel, InboundMessage

__all__ = ["BaseChannel", "InboundMessage"]
