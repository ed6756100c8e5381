"""Per-conversation trust: action kinds that no longer need a permission prompt."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class TrustCache:
    """
    Set of trusted action kinds per conversation.

    Trust is created by an "always" reply and lasts until the conversation's
    session is reset. Trust in one conversation never applies to another.
    """

    def __init__(self) -> None:
        self._trusted: dict[str, set[str]] = {}

    def is_trusted(self, conversation_id: str, action_kind: str) -> bool:
        return action_kind in self._trusted.get(conversation_id, ())

    def trust(self, conversation_id: str, action_kind: str) -> None:
        kinds = self._trusted.setdefault(conversation_id, set())
        if action_kind not in kinds:
            kinds.add(action_kind)
            logger.info("Trusted %s for conversation %s", action_kind, conversation_id)

    def reset(self, conversation_id: str) -> None:
        self._trusted.pop(conversation_id, None)

    def trusted_kinds(self, conversation_id: str) -> frozenset[str]:
        return frozenset(self._trusted.get(conversation_id, ()))
