"""
Telegram channel — Bot API over httpx with long polling.

Message handles are ``"{chat_id}:{message_id}"``: Telegram message ids are
only unique within a chat, so the chat id is part of the correlation key.
A reply that quotes one of our messages carries ``reply_to_message``, which
becomes the inbound message's ``reply_to`` handle.

Polling recovers from transient failures with exponential backoff
(1 s doubling up to 30 s). Rejected credentials (401/404) raise
ChannelAuthError and end the receive stream; a 409 Conflict means another
process is polling the same bot, so this one stops polling.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from codeclaw.channels.base import BaseChannel, InboundMessage
from codeclaw.core.constants import (
    DEFAULT_TELEGRAM_POLL_TIMEOUT,
    MAX_MESSAGE_CHARS,
    RECONNECT_BASE_DELAY_SECONDS,
    RECONNECT_MAX_DELAY_SECONDS,
)
from codeclaw.core.exceptions import ChannelAuthError, ChannelError

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramConflictError(ChannelError):
    """Another getUpdates consumer is active for this bot token (HTTP 409)."""


def split_message(text: str, max_len: int = MAX_MESSAGE_CHARS) -> list[str]:
    """
    Split *text* into chunks of at most *max_len* characters.

    Chunks break at the last newline inside the window unless that newline
    falls in the first half of the window, in which case the chunk is cut at
    exactly *max_len*.
    """
    chunks: list[str] = []
    remaining = text
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break
        split_at = remaining.rfind("\n", 0, max_len + 1)
        if split_at < max_len * 0.5:
            split_at = max_len
        chunks.append(remaining[:split_at])
        remaining = remaining[split_at:].lstrip()
    return chunks


class TelegramChannel(BaseChannel):
    channel_name = "telegram"
    display_name = "Telegram"

    def __init__(
        self,
        bot_token: str,
        allowed_user_ids: list[int],
        poll_timeout: int = DEFAULT_TELEGRAM_POLL_TIMEOUT,
        api_base: str = TELEGRAM_API_BASE,
    ) -> None:
        self._token = bot_token
        self._allowed = set(allowed_user_ids)
        self._poll_timeout = poll_timeout
        self._api_base = api_base.rstrip("/")
        self._client: httpx.AsyncClient | None = None
        self._offset = 0
        self._running = False
        self._polling = False
        self._reconnect_attempts = 0
        self._bot_username = ""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._poll_timeout + 10.0))
        me = await self._api("getMe", {})
        if me:
            self._bot_username = me.get("username", "")
            logger.info("Telegram bot connected: @%s", self._bot_username)
        self._running = True

    async def close(self) -> None:
        self._running = False
        self._polling = False
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _api(self, method: str, payload: dict[str, Any]) -> Any:
        """
        Call a Bot API method and return its ``result``.

        Returns None when Telegram answers ``ok: false`` with a non-fatal
        error code.
        """
        if self._client is None:
            raise ChannelError("Telegram channel is not started")
        url = f"{self._api_base}/bot{self._token}/{method}"
        try:
            resp = await self._client.post(url, json=payload)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ChannelError(f"Telegram {method} failed: {exc}") from exc

        if data.get("ok"):
            return data.get("result")

        code = data.get("error_code")
        description = data.get("description", "")
        if code == 409:
            raise TelegramConflictError(description)
        if code in (401, 404):
            raise ChannelAuthError(f"Telegram rejected the bot token ({code}): {description}")
        logger.warning("Telegram %s error %s: %s", method, code, description)
        return None

    # ------------------------------------------------------------------
    # Forward path
    # ------------------------------------------------------------------

    async def send(self, conversation_id: str, text: str) -> str:
        """Send *text*, chunked if needed. Returns the handle of the last chunk."""
        chunks = split_message(text)
        if not chunks:
            raise ChannelError(f"Refusing to send an empty message to {conversation_id}")
        handle = ""
        for chunk in chunks:
            result = await self._api("sendMessage", {"chat_id": conversation_id, "text": chunk})
            if not result or "message_id" not in result:
                raise ChannelError(f"Telegram sendMessage to {conversation_id} returned no message")
            handle = f"{conversation_id}:{result['message_id']}"
        return handle

    # ------------------------------------------------------------------
    # Return path
    # ------------------------------------------------------------------

    async def receive(self) -> AsyncIterator[InboundMessage]:  # type: ignore[override]
        self._polling = True
        try:
            while self._running and self._polling:
                try:
                    updates = await self._api(
                        "getUpdates",
                        {
                            "offset": self._offset,
                            "timeout": self._poll_timeout,
                            "allowed_updates": ["message"],
                        },
                    )
                except TelegramConflictError as exc:
                    logger.error("Another process is polling this bot; stopping: %s", exc)
                    return
                except ChannelAuthError:
                    raise
                except ChannelError as exc:
                    delay = self._next_backoff()
                    logger.warning("Telegram poll failed (%s). Retrying in %.0fs", exc, delay)
                    await asyncio.sleep(delay)
                    continue

                if updates is None:
                    await asyncio.sleep(self._next_backoff())
                    continue

                self._reconnect_attempts = 0
                for update in updates:
                    self._offset = max(self._offset, int(update.get("update_id", 0)) + 1)
                    message = self._parse_update(update)
                    if message is not None:
                        yield message
        finally:
            self._polling = False

    def _next_backoff(self) -> float:
        delay = min(
            RECONNECT_BASE_DELAY_SECONDS * 2**self._reconnect_attempts,
            RECONNECT_MAX_DELAY_SECONDS,
        )
        self._reconnect_attempts += 1
        return delay

    @staticmethod
    def _parse_update(update: dict[str, Any]) -> InboundMessage | None:
        message = update.get("message")
        if not isinstance(message, dict):
            return None
        text = message.get("text")
        if not text:
            return None
        chat_id = str(message.get("chat", {}).get("id", ""))
        if not chat_id:
            return None

        reply_to = None
        quoted = message.get("reply_to_message")
        if isinstance(quoted, dict) and "message_id" in quoted:
            reply_to = f"{chat_id}:{quoted['message_id']}"

        sender = message.get("from", {})
        return InboundMessage(
            conversation_id=chat_id,
            text=text,
            reply_to=reply_to,
            from_self=False,  # bots never receive their own messages
            sender_id=str(sender.get("id", "")),
        )

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def is_allowed(self, identity: str) -> bool:
        if not self._allowed:
            return True
        try:
            return int(identity) in self._allowed
        except ValueError:
            return False

    def healthcheck(self) -> dict[str, Any]:
        return {
            "status": "ok" if self._running else "stopped",
            "channel": self.channel_name,
            "bot": self._bot_username,
            "polling": self._polling,
        }
