"""
Correlation store — pending approvals keyed by prompt message handle.

Usage::

    store = CorrelationStore()
    future = store.register(handle, "chat-1", "Edit", {"file_path": "a.py"}, 120)
    ...
    store.resolve(handle, "yes")     # from the reply path
    decision = await future

Every entry is resolved exactly once. All three resolution paths (reply,
deadline timer, drain) pop the entry before completing its future, so
whichever runs first wins and the others find no entry.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from codeclaw.core.approval.models import (
    ApprovalDecision,
    ApprovalStatus,
    DenyReason,
    PendingApproval,
    Verdict,
    classify_reply,
)

logger = logging.getLogger(__name__)

_STATUS_FOR_VERDICT: dict[Verdict, ApprovalStatus] = {
    Verdict.ALLOW: ApprovalStatus.APPROVED,
    Verdict.ALLOW_ALWAYS: ApprovalStatus.TRUSTED,
    Verdict.DENY: ApprovalStatus.DENIED,
}


class CorrelationStore:
    """Process-wide registry of pending approvals and their deadline timers."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingApproval] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(
        self,
        handle: str,
        conversation_id: str,
        action_kind: str,
        action_detail: dict[str, Any],
        timeout_seconds: float,
        suggestions: tuple[Any, ...] = (),
    ) -> asyncio.Future[ApprovalDecision]:
        """Store a pending approval and start its deadline timer."""
        if handle in self._pending:
            raise ValueError(f"Handle already registered: {handle!r}")

        loop = asyncio.get_running_loop()
        future: asyncio.Future[ApprovalDecision] = loop.create_future()
        entry = PendingApproval.create(
            handle=handle,
            conversation_id=conversation_id,
            action_kind=action_kind,
            action_detail=action_detail,
            future=future,
            timeout_seconds=timeout_seconds,
            suggestions=suggestions,
        )
        entry.timer = loop.call_later(timeout_seconds, self._expire, handle)
        self._pending[handle] = entry
        logger.debug(
            "Approval registered: handle=%s conversation=%s kind=%s timeout=%ss",
            handle,
            conversation_id,
            action_kind,
            timeout_seconds,
        )
        return future

    # ------------------------------------------------------------------
    # Resolution paths
    # ------------------------------------------------------------------

    def resolve(self, handle: str, raw_reply: str) -> bool:
        """
        Resolve the approval for *handle* from a human reply.

        Returns False when no approval is pending under *handle* — the message
        is not a correlated reply and should be routed as ordinary input.
        """
        entry = self._pending.pop(handle, None)
        if entry is None:
            return False

        verdict = classify_reply(raw_reply)
        if verdict == Verdict.DENY:
            decision = ApprovalDecision.deny(DenyReason.USER_DENIED)
        else:
            decision = ApprovalDecision(verdict, suggestions=entry.suggestions)

        self._complete(entry, _STATUS_FOR_VERDICT[verdict], decision)
        return True

    def _expire(self, handle: str) -> None:
        entry = self._pending.pop(handle, None)
        if entry is None:
            return
        self._complete(entry, ApprovalStatus.EXPIRED, ApprovalDecision.deny(DenyReason.TIMED_OUT))

    def drain(self) -> int:
        """Deny every pending approval (shutdown). Returns how many were drained."""
        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            self._complete(
                entry, ApprovalStatus.CANCELED, ApprovalDecision.deny(DenyReason.SHUTTING_DOWN)
            )
        if entries:
            logger.info("Drained %d pending approval(s)", len(entries))
        return len(entries)

    @staticmethod
    def _complete(
        entry: PendingApproval, status: ApprovalStatus, decision: ApprovalDecision
    ) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
        entry.status = status
        logger.info(
            "Approval %s: handle=%s conversation=%s kind=%s",
            status,
            entry.handle,
            entry.conversation_id,
            entry.action_kind,
        )
        # The waiting gate may have been cancelled along with its task
        if not entry.future.done():
            entry.future.set_result(decision)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def __contains__(self, handle: object) -> bool:
        return handle in self._pending

    def __len__(self) -> int:
        return len(self._pending)
