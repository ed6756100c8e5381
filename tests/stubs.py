"""
In-memory test doubles for the channel and the task engine.

ChannelStub records every sent message and hands out sequential handles
("{conversation_id}:{n}"). EngineStub replays a scripted list of tool calls
through the gate and then yields a TaskResult, optionally blocking in
between so tests can abort it or race it.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from codeclaw.channels.base import BaseChannel, InboundMessage
from codeclaw.core.approval.models import ApprovalDecision
from codeclaw.core.engine import EngineEvent, GateFn, SessionUpdate, TaskEngine, TaskResult
from codeclaw.core.exceptions import ChannelError


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate* holds, failing after *timeout* seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


class ChannelStub(BaseChannel):
    channel_name = "stub"
    display_name = "Stub"

    def __init__(
        self,
        allowed: set[str] | None = None,
        self_conversation: str | None = None,
    ) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail_sends = False
        self.started = False
        self.closed = False
        self._allowed = allowed
        self._self_conversation = self_conversation
        self._ids = itertools.count(1)
        self._inbound: asyncio.Queue[InboundMessage | None] = asyncio.Queue()

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(None)

    async def send(self, conversation_id: str, text: str) -> str:
        if self.fail_sends:
            raise ChannelError("stub send failed")
        handle = f"{conversation_id}:{next(self._ids)}"
        self.sent.append((conversation_id, text, handle))
        return handle

    async def receive(self) -> AsyncIterator[InboundMessage]:  # type: ignore[override]
        while True:
            message = await self._inbound.get()
            if message is None:
                return
            yield message

    def push(self, message: InboundMessage) -> None:
        self._inbound.put_nowait(message)

    @property
    def self_conversation_id(self) -> str | None:
        return self._self_conversation

    def is_allowed(self, identity: str) -> bool:
        return self._allowed is None or identity in self._allowed

    # ------------------------------------------------------------------
    # Inspection helpers
    # ------------------------------------------------------------------

    def texts(self, conversation_id: str | None = None) -> list[str]:
        return [t for cid, t, _ in self.sent if conversation_id in (None, cid)]

    def prompts(self, conversation_id: str | None = None) -> list[tuple[str, str]]:
        """(text, handle) of every permission prompt sent."""
        return [
            (t, h)
            for cid, t, h in self.sent
            if t.startswith("🔧") and conversation_id in (None, cid)
        ]


class EngineStub(TaskEngine):
    def __init__(
        self,
        tool_calls: list[tuple[str, dict[str, Any]]] | None = None,
        result: TaskResult | None = None,
        session_id: str = "sess-1",
        error: Exception | None = None,
        hold: bool = False,
    ) -> None:
        self.tool_calls = tool_calls or []
        self.result = result
        self.session_id = session_id
        self.error = error
        self.release = asyncio.Event()
        if not hold:
            self.release.set()
        self.calls: list[dict[str, Any]] = []
        self.decisions: list[ApprovalDecision] = []
        self.cancelled = False

    async def run(  # type: ignore[override]
        self,
        prompt: str,
        working_dir: Path,
        continuation_token: str | None,
        gate: GateFn,
    ) -> AsyncIterator[EngineEvent]:
        self.calls.append(
            {"prompt": prompt, "working_dir": working_dir, "token": continuation_token}
        )
        try:
            yield SessionUpdate(self.session_id)
            for kind, detail in self.tool_calls:
                self.decisions.append(await gate(kind, detail, ()))
            await self.release.wait()
            if self.error is not None:
                raise self.error
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        yield self.result or TaskResult(
            success=True,
            result_text="done",
            cost_usd=0.0123,
            num_turns=3,
            continuation_token=self.session_id,
        )
