"""
Task registry — at most one in-flight agent task per conversation.

Each slot holds a cancel callback and an opaque owner token. ``finish`` only
clears a slot when called with the token that ``start`` registered, so a late
``finish`` from a previous attempt can never release a newer task's slot.

All methods are synchronous and run on the event loop thread, which makes
every check-and-set atomic with respect to other conversations' coroutines.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

CancelFn = Callable[[], object]


@dataclass
class TaskSlot:
    conversation_id: str
    cancel: CancelFn
    owner: object


class TaskRegistry:
    def __init__(self) -> None:
        self._slots: dict[str, TaskSlot] = {}

    def start(self, conversation_id: str, cancel_fn: CancelFn, owner: object = None) -> bool:
        """Claim the slot for *conversation_id*. Returns False if one is active."""
        if conversation_id in self._slots:
            return False
        self._slots[conversation_id] = TaskSlot(
            conversation_id=conversation_id,
            cancel=cancel_fn,
            owner=owner if owner is not None else cancel_fn,
        )
        return True

    def finish(self, conversation_id: str, owner: object = None) -> None:
        """
        Release the slot for *conversation_id*.

        When *owner* is given, the slot is released only if it still belongs
        to that owner.
        """
        slot = self._slots.get(conversation_id)
        if slot is None:
            return
        if owner is not None and slot.owner is not owner:
            logger.debug("Ignoring stale finish for conversation %s", conversation_id)
            return
        del self._slots[conversation_id]

    def cancel(self, conversation_id: str) -> bool:
        """Invoke the active task's cancel callback. Returns whether one existed."""
        slot = self._slots.get(conversation_id)
        if slot is None:
            return False
        slot.cancel()
        logger.info("Cancel requested for conversation %s", conversation_id)
        return True

    def cancel_all(self) -> int:
        """Cancel and clear every slot (shutdown). Returns how many were cancelled."""
        slots = list(self._slots.values())
        self._slots.clear()
        for slot in slots:
            try:
                slot.cancel()
            except Exception as exc:  # noqa: BLE001
                logger.error("Cancel failed for conversation %s: %s", slot.conversation_id, exc)
        return len(slots)

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._slots

    def __len__(self) -> int:
        return len(self._slots)
