"""
Pending approvals and their correlation store.

Public API::

    from codeclaw.core.approval import ApprovalDecision, CorrelationStore, classify_reply
"""

from codeclaw.core.approval.models import (
    ApprovalDecision,
    ApprovalStatus,
    DenyReason,
    PendingApproval,
    Verdict,
    classify_reply,
)
from codeclaw.core.approval.store import CorrelationStore

__all__ = [
    "ApprovalDecision",
    "ApprovalStatus",
    "CorrelationStore",
    "DenyReason",
    "PendingApproval",
    "Verdict",
    "classify_reply",
]
