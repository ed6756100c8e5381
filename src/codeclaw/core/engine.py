"""
Task engine interface and the Claude Agent SDK implementation.

An engine runs one unit of agent work and yields events::

    async for event in engine.run(prompt, working_dir, token, gate):
        if isinstance(event, SessionUpdate):
            ...                      # continuation token changed
        elif isinstance(event, TaskResult):
            ...                      # terminal event

``gate(action_kind, action_detail, suggestions)`` is awaited every time the
agent asks to use a tool that needs permission. Cancelling the task that
consumes ``run()`` stops the agent.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from codeclaw.core.approval.models import ApprovalDecision, DenyReason, Verdict
from codeclaw.core.exceptions import ChannelError, EngineError

logger = logging.getLogger(__name__)

GateFn = Callable[[str, dict[str, Any], tuple[Any, ...]], Awaitable[ApprovalDecision]]


@dataclass(frozen=True)
class SessionUpdate:
    continuation_token: str


@dataclass(frozen=True)
class TaskResult:
    success: bool
    result_text: str = ""
    cost_usd: float = 0.0
    num_turns: int = 0
    continuation_token: str | None = None
    errors: list[str] = field(default_factory=list)


EngineEvent = SessionUpdate | TaskResult


class TaskEngine(ABC):
    """Interface for the coding agent that executes tasks."""

    @abstractmethod
    def run(
        self,
        prompt: str,
        working_dir: Path,
        continuation_token: str | None,
        gate: GateFn,
    ) -> AsyncIterator[EngineEvent]:
        """Start the task and yield its events. The last event is a TaskResult."""


# ---------------------------------------------------------------------------
# Claude Agent SDK
# ---------------------------------------------------------------------------


class ClaudeAgentEngine(TaskEngine):
    """
    Runs tasks with ``claude_agent_sdk.query``.

    The SDK's ``can_use_tool`` callback is wired to the gate. An "always"
    decision hands the SDK's own permission suggestions back so the agent
    stops asking for the same rule.
    """

    def __init__(self, permission_mode: str = "default") -> None:
        self._permission_mode = permission_mode

    async def run(  # type: ignore[override]
        self,
        prompt: str,
        working_dir: Path,
        continuation_token: str | None,
        gate: GateFn,
    ) -> AsyncIterator[EngineEvent]:
        # Import SDK lazily so the rest of the package works without it
        from claude_agent_sdk import ClaudeAgentOptions, ClaudeSDKError, ResultMessage, query

        async def can_use_tool(tool_name: str, tool_input: dict[str, Any], context: Any) -> Any:
            suggestions = tuple(getattr(context, "suggestions", None) or ())
            try:
                decision = await gate(tool_name, tool_input, suggestions)
            except ChannelError as exc:
                logger.error("Permission prompt for %s could not be sent: %s", tool_name, exc)
                decision = ApprovalDecision.deny(DenyReason.DELIVERY_FAILED)
            return to_sdk_permission(decision)

        options_kwargs: dict[str, Any] = {
            "cwd": str(working_dir),
            "permission_mode": self._permission_mode,
            "can_use_tool": can_use_tool,
        }
        if continuation_token:
            options_kwargs["resume"] = continuation_token
        options = ClaudeAgentOptions(**options_kwargs)

        # can_use_tool requires streaming input, so the prompt is an
        # async iterable of one user message
        async def _prompt_stream() -> AsyncIterator[dict[str, Any]]:
            yield {
                "type": "user",
                "message": {"role": "user", "content": prompt},
            }

        token = continuation_token
        result: TaskResult | None = None
        messages = query(prompt=_prompt_stream(), options=options)
        try:
            # read to the end; the result is yielded once the stream is closed
            async with aclosing(messages):
                async for message in messages:
                    session_id = _session_id_of(message)
                    if session_id and session_id != token:
                        token = session_id
                        yield SessionUpdate(session_id)

                    if isinstance(message, ResultMessage) and result is None:
                        result = result_from_sdk(message, token)
        except ClaudeSDKError as exc:
            raise EngineError(f"Claude agent failed: {exc}") from exc

        if result is not None:
            yield result


def _session_id_of(message: Any) -> str | None:
    session_id = getattr(message, "session_id", None)
    if session_id:
        return str(session_id)
    data = getattr(message, "data", None)
    if isinstance(data, dict) and data.get("session_id"):
        return str(data["session_id"])
    return None


def to_sdk_permission(decision: ApprovalDecision) -> Any:
    """Map an ApprovalDecision to the SDK's PermissionResult types."""
    from claude_agent_sdk.types import PermissionResultAllow, PermissionResultDeny

    if not decision.allowed:
        return PermissionResultDeny(message=decision.message)
    if decision.verdict == Verdict.ALLOW_ALWAYS and decision.suggestions:
        return PermissionResultAllow(updated_permissions=list(decision.suggestions))
    return PermissionResultAllow()


def result_from_sdk(message: Any, token: str | None) -> TaskResult:
    """Build the terminal TaskResult from an SDK ResultMessage."""
    subtype = getattr(message, "subtype", "") or ""
    success = subtype == "success" and not getattr(message, "is_error", False)
    errors: list[str] = []
    if not success:
        errors = list(getattr(message, "errors", None) or [])
        if not errors:
            errors = [getattr(message, "result", None) or subtype or "unknown error"]
    return TaskResult(
        success=success,
        result_text=(getattr(message, "result", None) or "") if success else "",
        cost_usd=float(getattr(message, "total_cost_usd", None) or 0.0),
        num_turns=int(getattr(message, "num_turns", None) or 0),
        continuation_token=getattr(message, "session_id", None) or token,
        errors=errors,
    )
