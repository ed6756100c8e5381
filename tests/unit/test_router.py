"""
Tests for MessageRouter.

Covers:
  - Correlated replies resolve prompts; other replies become tasks
  - Authorization (allow-list, own-account messages only in the self-chat)
  - Built-in commands: /help /status /cd /pwd /new /abort /stop
  - Unknown slash commands and plain text start a task
  - File browser commands and number replies
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from codeclaw.channels.base import InboundMessage
from codeclaw.core.approval.models import Verdict
from codeclaw.core.approval.store import CorrelationStore
from codeclaw.core.bridge import PermissionBridge
from codeclaw.core.router import HELP_TEXT, ChatState, MessageRouter
from codeclaw.core.runner import STARTED_TEXT, TaskRunner
from codeclaw.core.sessions import SessionRegistry
from codeclaw.core.tasks import TaskRegistry
from codeclaw.core.trust import TrustCache
from tests.stubs import ChannelStub, EngineStub, wait_until


class Setup:
    def __init__(self, tmp_path: Path, engine: EngineStub | None = None, **channel_kw) -> None:
        self.channel = ChannelStub(**channel_kw)
        self.engine = engine or EngineStub()
        self.trust = TrustCache()
        self.sessions = SessionRegistry()
        self.bridge = PermissionBridge(
            self.channel.send, CorrelationStore(), self.trust, timeout_seconds=10
        )
        self.runner = TaskRunner(
            self.engine, self.bridge, TaskRegistry(), self.sessions, self.trust, self.channel.send
        )
        self.state = ChatState(default_working_dir=tmp_path)
        self.router = MessageRouter(self.channel, self.bridge, self.runner, self.state)

    async def say(self, text: str, cid: str = "c1", **kw) -> None:
        await self.router.handle(InboundMessage(conversation_id=cid, text=text, **kw))

    def last(self, cid: str = "c1") -> str:
        return self.channel.texts(cid)[-1]


# ---------------------------------------------------------------------------
# Replies and tasks
# ---------------------------------------------------------------------------


class TestRouting:
    @pytest.mark.asyncio
    async def test_plain_text_starts_task(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("  add a README  ")
        assert s.engine.calls[0]["prompt"] == "add a README"
        assert s.engine.calls[0]["working_dir"] == tmp_path
        assert s.channel.texts("c1")[0] == STARTED_TEXT

    @pytest.mark.asyncio
    async def test_empty_text_ignored(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("   ")
        assert s.channel.sent == []
        assert s.engine.calls == []

    @pytest.mark.asyncio
    async def test_reply_to_prompt_resolves_it(self, tmp_path) -> None:
        s = Setup(tmp_path, EngineStub(tool_calls=[("Edit", {"file_path": "x.py"})]))
        task = asyncio.create_task(s.say("edit x"))
        await wait_until(lambda: s.bridge.pending_count == 1)

        handle = s.channel.prompts("c1")[0][1]
        await s.say("always", reply_to=handle)
        await task

        assert s.engine.decisions[0].verdict == Verdict.ALLOW_ALWAYS
        assert s.trust.is_trusted("c1", "Edit")
        # The reply was consumed, not run as a task
        assert len(s.engine.calls) == 1

    @pytest.mark.asyncio
    async def test_reply_to_other_message_is_a_task(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("explain this", reply_to="c1:12345")
        assert s.engine.calls[0]["prompt"] == "explain this"

    @pytest.mark.asyncio
    async def test_unknown_slash_command_forwarded(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("/commit")
        assert s.engine.calls[0]["prompt"] == "/commit"


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_unlisted_sender_ignored(self, tmp_path) -> None:
        s = Setup(tmp_path, allowed={"42"})
        await s.say("rm everything", sender_id="99")
        assert s.channel.sent == []
        assert s.engine.calls == []

    @pytest.mark.asyncio
    async def test_listed_sender_accepted(self, tmp_path) -> None:
        s = Setup(tmp_path, allowed={"42"})
        await s.say("/pwd", sender_id="42")
        assert s.last() == str(tmp_path)

    @pytest.mark.asyncio
    async def test_own_messages_only_in_self_chat(self, tmp_path) -> None:
        s = Setup(tmp_path, allowed=set(), self_conversation="me")
        await s.say("/pwd", cid="group", from_self=True)
        assert s.channel.sent == []

        await s.say("/pwd", cid="me", from_self=True)
        assert s.last("me") == str(tmp_path)

    @pytest.mark.asyncio
    async def test_unauthorized_reply_cannot_approve(self, tmp_path) -> None:
        s = Setup(tmp_path, EngineStub(tool_calls=[("Bash", {})]), allowed={"42"})
        task = asyncio.create_task(s.say("run it", sender_id="42"))
        await wait_until(lambda: s.bridge.pending_count == 1)

        handle = s.channel.prompts("c1")[0][1]
        await s.say("yes", reply_to=handle, sender_id="99")
        assert s.bridge.pending_count == 1

        await s.say("no", reply_to=handle, sender_id="42")
        await task
        assert s.engine.decisions[0].verdict == Verdict.DENY


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommands:
    @pytest.mark.asyncio
    async def test_help(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("/help")
        assert s.last() == HELP_TEXT

    @pytest.mark.asyncio
    async def test_status(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("/STATUS")
        assert s.last() == (
            f"CodeClaw Status\n\nActive tasks: 0\nPending permissions: 0\nWorking dir: {tmp_path}"
        )

    @pytest.mark.asyncio
    async def test_cd_and_pwd(self, tmp_path) -> None:
        (tmp_path / "proj").mkdir()
        s = Setup(tmp_path)

        await s.say("/cd proj")
        target = (tmp_path / "proj").resolve()
        assert s.last() == f"Working directory changed to: {target}"

        await s.say("/pwd")
        assert s.last() == str(target)

        # Other conversations keep the default
        await s.say("/pwd", cid="c2")
        assert s.last("c2") == str(tmp_path)

        await s.say("run")
        assert s.engine.calls[0]["working_dir"] == target

    @pytest.mark.asyncio
    async def test_cd_errors(self, tmp_path) -> None:
        (tmp_path / "file.txt").write_text("x")
        s = Setup(tmp_path)

        await s.say("/cd missing")
        assert s.last().startswith("Directory not found:")
        await s.say("/cd file.txt")
        assert s.last().startswith("Not a directory:")
        await s.say("/cd")
        assert s.last() == f"Current directory: {tmp_path}"

    @pytest.mark.asyncio
    async def test_new_resets_session(self, tmp_path) -> None:
        s = Setup(tmp_path)
        s.sessions.set("c1", "tok")
        s.trust.trust("c1", "Edit")

        await s.say("/new")
        assert s.last() == "Session cleared. Next message starts a fresh conversation."
        assert s.sessions.get("c1") is None
        assert not s.trust.is_trusted("c1", "Edit")

    @pytest.mark.asyncio
    async def test_abort_without_task(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("/abort")
        assert s.last() == "No active task to abort."

    @pytest.mark.asyncio
    async def test_stop_running_task(self, tmp_path) -> None:
        s = Setup(tmp_path, EngineStub(hold=True))
        task = asyncio.create_task(s.say("long job"))
        await wait_until(lambda: len(s.engine.calls) == 1)

        await s.say("/stop")
        assert "Aborting current task..." in s.channel.texts("c1")
        await task
        assert s.last() == "Stopped."


# ---------------------------------------------------------------------------
# File browser
# ---------------------------------------------------------------------------


class TestFileBrowserCommands:
    @pytest.mark.asyncio
    async def test_ls_then_number(self, tmp_path) -> None:
        (tmp_path / "notes.md").write_text("hello")
        s = Setup(tmp_path)

        await s.say("/ls")
        assert s.last().startswith("📁 . (1 items)")

        await s.say("1")
        assert s.last().startswith("📄 notes.md (1 lines, markdown)")
        assert s.engine.calls == []

    @pytest.mark.asyncio
    async def test_number_without_listing_is_a_task(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("42")
        assert s.engine.calls[0]["prompt"] == "42"

    @pytest.mark.asyncio
    async def test_plain_text_shortcuts(self, tmp_path) -> None:
        (tmp_path / "pkg").mkdir()
        (tmp_path / "main.py").write_text("x = 1")
        s = Setup(tmp_path)

        await s.say("browse pkg")
        assert s.last().startswith("📁 pkg (0 items)")
        await s.say("cat main.py")
        assert s.last().startswith("📄 main.py (1 lines, python)")
        assert s.engine.calls == []

    @pytest.mark.asyncio
    async def test_show_requires_path(self, tmp_path) -> None:
        s = Setup(tmp_path)
        await s.say("/show")
        assert s.last() == "Usage: /show <filepath>"

    @pytest.mark.asyncio
    async def test_browse_follows_working_dir(self, tmp_path) -> None:
        (tmp_path / "proj").mkdir()
        (tmp_path / "proj" / "inner.txt").write_text("x")
        s = Setup(tmp_path)
        await s.say("/cd proj")
        await s.say("/browse")
        assert "1. 📄 inner.txt" in s.last()
