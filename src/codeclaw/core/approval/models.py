"""
Approval data model: decisions, deny reasons, and pending-approval records.

A PendingApproval is created when the agent asks to use a tool and lives
until exactly one of three things happens: the human replies to the prompt,
the deadline passes, or the daemon shuts down. Whichever comes first
resolves the decision future; the record is removed from the store before
the future is completed, so later attempts find nothing to resolve.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any


class Verdict(StrEnum):
    ALLOW = "allow"
    ALLOW_ALWAYS = "allow_always"
    DENY = "deny"


class DenyReason(StrEnum):
    USER_DENIED = "denied by user"
    TIMED_OUT = "timed out"
    SHUTTING_DOWN = "shutting down"
    DELIVERY_FAILED = "delivery failed"


class ApprovalStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    TRUSTED = "trusted"
    DENIED = "denied"
    EXPIRED = "expired"
    CANCELED = "canceled"


# Human-readable text returned to the agent alongside a deny
_DENY_MESSAGES: dict[DenyReason, str] = {
    DenyReason.USER_DENIED: "User denied",
    DenyReason.TIMED_OUT: "Permission timed out",
    DenyReason.SHUTTING_DOWN: "Shutting down",
    DenyReason.DELIVERY_FAILED: "Could not deliver permission prompt",
}

_ALLOW_REPLIES = frozenset({"yes", "y", "approve"})
_ALWAYS_REPLIES = frozenset({"always", "a"})


@dataclass(frozen=True)
class ApprovalDecision:
    """The outcome delivered to the agent's tool gate."""

    verdict: Verdict
    reason: DenyReason | None = None
    # Engine-supplied permission updates, handed back on ALLOW_ALWAYS
    suggestions: tuple[Any, ...] = ()

    @classmethod
    def allow(cls) -> ApprovalDecision:
        return cls(Verdict.ALLOW)

    @classmethod
    def deny(cls, reason: DenyReason) -> ApprovalDecision:
        return cls(Verdict.DENY, reason=reason)

    @property
    def allowed(self) -> bool:
        return self.verdict != Verdict.DENY

    @property
    def message(self) -> str:
        if self.reason is None:
            return ""
        return _DENY_MESSAGES[self.reason]


def classify_reply(text: str) -> Verdict:
    """
    Map a raw reply to a verdict.

    Matching is case-insensitive on the trimmed text. Anything that is not an
    explicit approval is a deny.
    """
    d = text.strip().lower()
    if d in _ALLOW_REPLIES:
        return Verdict.ALLOW
    if d in _ALWAYS_REPLIES:
        return Verdict.ALLOW_ALWAYS
    return Verdict.DENY


@dataclass
class PendingApproval:
    """One outstanding permission prompt, keyed by the prompt's message handle."""

    handle: str
    conversation_id: str
    action_kind: str
    action_detail: dict[str, Any]
    future: asyncio.Future[ApprovalDecision]
    expires_at: datetime
    suggestions: tuple[Any, ...] = ()
    timer: asyncio.TimerHandle | None = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def create(
        cls,
        handle: str,
        conversation_id: str,
        action_kind: str,
        action_detail: dict[str, Any],
        future: asyncio.Future[ApprovalDecision],
        timeout_seconds: float,
        suggestions: tuple[Any, ...] = (),
    ) -> PendingApproval:
        now = datetime.now(UTC)
        return cls(
            handle=handle,
            conversation_id=conversation_id,
            action_kind=action_kind,
            action_detail=action_detail,
            future=future,
            expires_at=now + timedelta(seconds=timeout_seconds),
            suggestions=suggestions,
            created_at=now,
        )
