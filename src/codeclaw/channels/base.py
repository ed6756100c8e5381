"""
BaseChannel — abstract messaging channel.

Forward path: ``send()`` delivers text to a conversation and returns an opaque,
stable handle for the sent message.
Return path:  ``receive()`` yields InboundMessage objects. A message whose
``reply_to`` is set explicitly references an earlier message by its handle.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class InboundMessage:
    conversation_id: str
    text: str
    reply_to: str | None = None  # handle of the quoted message, if any
    from_self: bool = False  # sent by the account the channel runs as
    sender_id: str = ""

    @property
    def is_correlated_reply(self) -> bool:
        return self.reply_to is not None


class BaseChannel(ABC):
    channel_name: str = ""
    display_name: str = ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def start(self) -> None:
        """Open connections. Raises ChannelAuthError on rejected credentials."""

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Safe to call more than once."""

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    @abstractmethod
    async def send(self, conversation_id: str, text: str) -> str:
        """
        Deliver *text* to *conversation_id* and return the message handle.

        Raises ChannelError when the message could not be delivered.
        """

    # ------------------------------------------------------------------
    # Return path
    # ------------------------------------------------------------------

    @abstractmethod
    def receive(self) -> AsyncIterator[InboundMessage]:
        """Yield inbound messages until the channel is closed."""

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def self_conversation_id(self) -> str | None:
        """Conversation with the channel's own account, if the channel has one."""
        return None

    @abstractmethod
    def is_allowed(self, identity: str) -> bool:
        """Return True if messages from *identity* may drive the agent."""

    def healthcheck(self) -> dict[str, Any]:
        return {"status": "ok", "channel": self.channel_name}
