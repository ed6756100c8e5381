"""
Task runner — lifecycle of one agent task per conversation.

``execute_task`` claims the conversation's slot in the TaskRegistry, runs the
engine in a child asyncio task (so ``abort`` can cancel it without cancelling
the caller), reports the outcome to the chat, stores the continuation token
(unless /new reset the session while the task ran), and always releases the
slot.

Outcomes reported to the chat:

    success       result text + "$cost | N turns" footer
    engine error  "❌ Error: ..." + footer
    abort         "Stopped."
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from codeclaw.core.approval.models import ApprovalDecision
from codeclaw.core.bridge import PermissionBridge
from codeclaw.core.engine import SessionUpdate, TaskEngine, TaskResult
from codeclaw.core.exceptions import ChannelError
from codeclaw.core.sessions import SessionRegistry
from codeclaw.core.tasks import TaskRegistry
from codeclaw.core.trust import TrustCache

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str], Awaitable[str]]

ALREADY_RUNNING_TEXT = "A task is already running. Send /abort to cancel it first."
STARTED_TEXT = "Working on it..."
STOPPED_TEXT = "Stopped."


@dataclass(frozen=True)
class StatusSnapshot:
    active_task_count: int
    pending_approval_count: int
    working_dir: str


class _Attempt:
    """Cancel handle for one task attempt; also the TaskRegistry slot owner."""

    def __init__(self, session_generation: int) -> None:
        self.task: asyncio.Task[TaskResult | None] | None = None
        self.session_generation = session_generation
        self.cancel_requested = False
        self.continuation_token: str | None = None

    def cancel(self) -> None:
        self.cancel_requested = True
        if self.task is not None:
            self.task.cancel()


def format_result(result: TaskResult) -> str:
    if result.success:
        text = result.result_text
    else:
        text = "Error: " + "\n".join(result.errors)
    if not text:
        return ""
    cost_line = f"\n---\n${result.cost_usd:.4f} | {result.num_turns} turns"
    return f"❌ {text}{cost_line}" if not result.success else f"{text}{cost_line}"


class TaskRunner:
    def __init__(
        self,
        engine: TaskEngine,
        bridge: PermissionBridge,
        tasks: TaskRegistry,
        sessions: SessionRegistry,
        trust: TrustCache,
        send: SendFn,
    ) -> None:
        self._engine = engine
        self._bridge = bridge
        self._tasks = tasks
        self._sessions = sessions
        self._trust = trust
        self._send = send

    # ------------------------------------------------------------------
    # Task execution
    # ------------------------------------------------------------------

    async def execute_task(
        self,
        conversation_id: str,
        prompt: str,
        working_dir: Path,
    ) -> TaskResult | None:
        """
        Run *prompt* for *conversation_id* and report the outcome to the chat.

        Returns the engine's TaskResult, or None when the task was rejected,
        stopped, or failed before producing a result.
        """
        attempt = _Attempt(self._sessions.generation(conversation_id))
        if not self._tasks.start(conversation_id, attempt.cancel, owner=attempt):
            await self._notify(conversation_id, ALREADY_RUNNING_TEXT)
            return None

        logger.info("Task started: conversation=%s cwd=%s", conversation_id, working_dir)
        try:
            await self._send(conversation_id, STARTED_TEXT)

            attempt.task = asyncio.create_task(
                self._consume(conversation_id, prompt, working_dir, attempt),
                name=f"task_{conversation_id}",
            )
            if attempt.cancel_requested:
                attempt.task.cancel()

            try:
                result = await attempt.task
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if current is not None and current.cancelling():
                    raise
                logger.info("Task stopped: conversation=%s", conversation_id)
                await self._notify(conversation_id, STOPPED_TEXT)
                return None

            if result is None:
                logger.warning("Engine ended without a result: conversation=%s", conversation_id)
                return None

            text = format_result(result)
            if text:
                await self._send(conversation_id, text)
            logger.info(
                "Task finished: conversation=%s success=%s turns=%d cost=%.4f",
                conversation_id,
                result.success,
                result.num_turns,
                result.cost_usd,
            )
            return result

        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.exception("Task failed: conversation=%s", conversation_id)
            await self._notify(conversation_id, f"❌ Error: {exc}")
            return None
        finally:
            self._store_token(conversation_id, attempt)
            self._tasks.finish(conversation_id, owner=attempt)

    async def _consume(
        self,
        conversation_id: str,
        prompt: str,
        working_dir: Path,
        attempt: _Attempt,
    ) -> TaskResult | None:
        async def gate(
            action_kind: str,
            action_detail: dict[str, Any],
            suggestions: tuple[Any, ...] = (),
        ) -> ApprovalDecision:
            return await self._bridge.on_approval_needed(
                conversation_id, action_kind, action_detail, suggestions=suggestions
            )

        events = self._engine.run(
            prompt,
            working_dir,
            self._sessions.get(conversation_id),
            gate,
        )
        async with aclosing(events):
            async for event in events:
                if isinstance(event, SessionUpdate):
                    attempt.continuation_token = event.continuation_token
                elif isinstance(event, TaskResult):
                    if event.continuation_token:
                        attempt.continuation_token = event.continuation_token
                    return event
        return None

    def _store_token(self, conversation_id: str, attempt: _Attempt) -> None:
        if not attempt.continuation_token:
            return
        if self._sessions.generation(conversation_id) != attempt.session_generation:
            logger.info(
                "Session reset during task, token dropped: conversation=%s", conversation_id
            )
            return
        self._sessions.set(conversation_id, attempt.continuation_token)

    async def _notify(self, conversation_id: str, text: str) -> None:
        """Best-effort status message; delivery failures are logged, not raised."""
        try:
            await self._send(conversation_id, text)
        except ChannelError as exc:
            logger.warning("Could not notify %s: %s", conversation_id, exc)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def abort(self, conversation_id: str) -> bool:
        return self._tasks.cancel(conversation_id)

    def reset_session(self, conversation_id: str) -> None:
        """Forget the conversation's agent context and trusted tools."""
        self._sessions.clear(conversation_id)
        self._trust.reset(conversation_id)

    def status(self, working_dir: Path | str) -> StatusSnapshot:
        return StatusSnapshot(
            active_task_count=len(self._tasks),
            pending_approval_count=self._bridge.pending_count,
            working_dir=str(working_dir),
        )

    def shutdown(self) -> tuple[int, int]:
        """Cancel every task and deny every pending approval."""
        cancelled = self._tasks.cancel_all()
        drained = self._bridge.drain()
        logger.info("Shutdown: cancelled %d task(s), denied %d approval(s)", cancelled, drained)
        return cancelled, drained
