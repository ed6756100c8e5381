"""
Message router — decides what an inbound chat message means.

Order of precedence:
  1. Authorization: messages from the channel's own account are handled only
     in its self-chat; anyone else must pass ``channel.is_allowed``.
  2. Correlated reply: a message quoting a pending permission prompt
     resolves that prompt. Replies to anything else fall through.
  3. A bare number after a directory listing opens that entry.
  4. Slash commands: /help /status /cd /pwd /new /abort /stop, and the file
     browser commands /browse /ls /show /cat (also accepted without the slash).
  5. Everything else (including unknown slash commands, which the agent
     understands itself) becomes the prompt for a new task.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from codeclaw.channels.base import BaseChannel, InboundMessage
from codeclaw.core.bridge import PermissionBridge
from codeclaw.core.browser import FileBrowser
from codeclaw.core.runner import TaskRunner

logger = logging.getLogger(__name__)

_BROWSE_WORDS = frozenset({"browse", "ls", "show", "cat"})

HELP_TEXT = """CodeClaw Commands

File Operations:
  browse <dir> - Browse directory
  show <file> - View file contents
  ls <dir> - Alias for browse
  cat <file> - Alias for show

Claude Code:
  Any text message is sent to Claude Code.
  Slash commands (e.g. /commit, /review) are forwarded.

Session:
  /cd <path> - Change working directory
  /pwd - Show current working directory
  /new - Start a fresh conversation

System:
  /help - This message
  /status - Show status
  /abort - Cancel current task

Permissions:
  When Claude needs approval, reply to the
  permission message with: yes, no, or always"""


@dataclass
class ChatState:
    """Per-conversation settings that outlive individual tasks."""

    default_working_dir: Path
    working_dirs: dict[str, Path] = field(default_factory=dict)

    def working_dir(self, conversation_id: str) -> Path:
        return self.working_dirs.get(conversation_id, self.default_working_dir)

    def set_working_dir(self, conversation_id: str, path: Path) -> None:
        self.working_dirs[conversation_id] = path


class MessageRouter:
    def __init__(
        self,
        channel: BaseChannel,
        bridge: PermissionBridge,
        runner: TaskRunner,
        state: ChatState,
        browser: FileBrowser | None = None,
    ) -> None:
        self._channel = channel
        self._bridge = bridge
        self._runner = runner
        self._state = state
        self._browser = browser or FileBrowser()

    async def handle(self, message: InboundMessage) -> None:
        if not self._authorized(message):
            logger.debug(
                "Ignoring message from %s in %s", message.sender_id, message.conversation_id
            )
            return

        cid = message.conversation_id

        if message.reply_to is not None:
            if self._bridge.on_reply_received(message.reply_to, message.text):
                return

        trimmed = message.text.strip()
        if not trimmed:
            return

        if trimmed.isdecimal() and self._browser.has_listing(cid):
            opened = self._browser.open_entry(cid, int(trimmed))
            if opened is not None:
                await self._reply(cid, opened)
                return

        if trimmed.startswith("/"):
            cmd, _, rest = trimmed[1:].partition(" ")
            if await self._command(cid, cmd.lower(), rest.strip()):
                return
        else:
            word, _, rest = trimmed.partition(" ")
            if rest.strip() and word.lower() in _BROWSE_WORDS:
                await self._file_command(cid, word.lower(), rest.strip(), usage=word.lower())
                return

        await self._runner.execute_task(cid, trimmed, self._state.working_dir(cid))

    def _authorized(self, message: InboundMessage) -> bool:
        if message.from_self:
            return message.conversation_id == self._channel.self_conversation_id
        return self._channel.is_allowed(message.sender_id)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _command(self, cid: str, cmd: str, args: str) -> bool:
        """Handle a built-in command. Returns False for commands the agent should see."""
        if cmd == "help":
            await self._reply(cid, HELP_TEXT)
        elif cmd == "status":
            snap = self._runner.status(self._state.working_dir(cid))
            await self._reply(
                cid,
                "\n".join(
                    [
                        "CodeClaw Status",
                        "",
                        f"Active tasks: {snap.active_task_count}",
                        f"Pending permissions: {snap.pending_approval_count}",
                        f"Working dir: {snap.working_dir}",
                    ]
                ),
            )
        elif cmd == "cd":
            await self._change_dir(cid, args)
        elif cmd == "pwd":
            await self._reply(cid, str(self._state.working_dir(cid)))
        elif cmd == "new":
            self._runner.reset_session(cid)
            await self._reply(cid, "Session cleared. Next message starts a fresh conversation.")
        elif cmd in _BROWSE_WORDS:
            await self._file_command(cid, cmd, args, usage=f"/{cmd}")
        elif cmd in ("abort", "stop"):
            if self._runner.abort(cid):
                await self._reply(cid, "Aborting current task...")
            else:
                await self._reply(cid, "No active task to abort.")
        else:
            return False
        return True

    async def _file_command(self, cid: str, cmd: str, args: str, usage: str) -> None:
        root = self._state.working_dir(cid)
        if cmd in ("browse", "ls"):
            await self._reply(cid, self._browser.browse(cid, args or ".", root))
        elif not args:
            await self._reply(cid, f"Usage: {usage} <filepath>")
        else:
            await self._reply(cid, self._browser.view_file(args, root))

    async def _change_dir(self, cid: str, target: str) -> None:
        current = self._state.working_dir(cid)
        if not target:
            await self._reply(cid, f"Current directory: {current}")
            return
        resolved = (current / Path(target).expanduser()).resolve()
        if not resolved.exists():
            await self._reply(cid, f"Directory not found: {resolved}")
            return
        if not resolved.is_dir():
            await self._reply(cid, f"Not a directory: {resolved}")
            return
        self._state.set_working_dir(cid, resolved)
        await self._reply(cid, f"Working directory changed to: {resolved}")

    async def _reply(self, cid: str, text: str) -> None:
        await self._channel.send(cid, text)
