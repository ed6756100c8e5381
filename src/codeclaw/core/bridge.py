"""
Permission bridge — turns the agent's tool-permission callback into a chat
round-trip.

Flow for one approval::

    agent gate ─► on_approval_needed()
                    ├─ trusted kind? ──────────────► allow (no prompt)
                    ├─ send prompt ─► handle
                    ├─ store.register(handle) ─► future
                    └─ await future ◄── on_reply_received(handle, text)
                                     ◄── deadline timer
                                     ◄── shutdown drain

The prompt is registered only after it was delivered; a failed send raises
ChannelError and leaves nothing behind in the store. Several approvals may
be pending at once in the same conversation — each is keyed by its own
prompt handle.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from codeclaw.core.approval.models import ApprovalDecision, Verdict
from codeclaw.core.approval.prompt import format_permission_prompt
from codeclaw.core.approval.store import CorrelationStore
from codeclaw.core.constants import DEFAULT_APPROVAL_TIMEOUT_SECONDS
from codeclaw.core.trust import TrustCache

logger = logging.getLogger(__name__)

SendFn = Callable[[str, str], Awaitable[str]]


class PermissionBridge:
    def __init__(
        self,
        send: SendFn,
        store: CorrelationStore,
        trust: TrustCache,
        timeout_seconds: float = DEFAULT_APPROVAL_TIMEOUT_SECONDS,
    ) -> None:
        self._send = send
        self._store = store
        self._trust = trust
        self._timeout = timeout_seconds

    async def on_approval_needed(
        self,
        conversation_id: str,
        action_kind: str,
        action_detail: dict[str, Any],
        reason: str = "",
        suggestions: tuple[Any, ...] = (),
    ) -> ApprovalDecision:
        """Ask the human whether the agent may perform this action."""
        if self._trust.is_trusted(conversation_id, action_kind):
            logger.debug("Auto-allowed trusted %s in %s", action_kind, conversation_id)
            return ApprovalDecision.allow()

        text = format_permission_prompt(action_kind, action_detail, reason)
        handle = await self._send(conversation_id, text)
        logger.info(
            "Permission prompt sent: conversation=%s kind=%s handle=%s",
            conversation_id,
            action_kind,
            handle,
        )

        future = self._store.register(
            handle,
            conversation_id,
            action_kind,
            action_detail,
            self._timeout,
            suggestions=suggestions,
        )
        decision = await future

        if decision.verdict == Verdict.ALLOW_ALWAYS:
            self._trust.trust(conversation_id, action_kind)
        return decision

    def on_reply_received(self, handle: str, raw_text: str) -> bool:
        """Resolve the approval prompted by *handle*. False if nothing was pending."""
        return self._store.resolve(handle, raw_text)

    @property
    def pending_count(self) -> int:
        return len(self._store)

    def drain(self) -> int:
        return self._store.drain()
