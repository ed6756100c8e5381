"""
Session registry — continuation tokens that let a new task resume the
agent's previous context in the same conversation.

Tokens live in memory. When session persistence is enabled the daemon
restores the registry from ``~/.codeclaw/state.json`` at startup and writes
it back at shutdown; trust and pending approvals are never persisted.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from codeclaw.core.exceptions import SessionError

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self) -> None:
        self._tokens: dict[str, str] = {}
        # bumped on every clear so a task started before a reset cannot undo it
        self._generations: dict[str, int] = {}

    def get(self, conversation_id: str) -> str | None:
        return self._tokens.get(conversation_id)

    def set(self, conversation_id: str, token: str) -> None:
        self._tokens[conversation_id] = token

    def clear(self, conversation_id: str) -> None:
        self._tokens.pop(conversation_id, None)
        self._generations[conversation_id] = self.generation(conversation_id) + 1

    def generation(self, conversation_id: str) -> int:
        return self._generations.get(conversation_id, 0)

    def snapshot(self) -> dict[str, str]:
        """Return all sessions as a plain dict for persistence."""
        return dict(self._tokens)

    def restore(self, data: object) -> int:
        """Load sessions from a plain dict. Non-string entries are skipped."""
        if not isinstance(data, dict):
            return 0
        restored = 0
        for conversation_id, token in data.items():
            if isinstance(conversation_id, str) and isinstance(token, str) and token:
                self._tokens[conversation_id] = token
                restored += 1
        return restored

    def __len__(self) -> int:
        return len(self._tokens)


# ---------------------------------------------------------------------------
# State file
# ---------------------------------------------------------------------------


def load_sessions(registry: SessionRegistry, path: Path) -> int:
    """Restore *registry* from the state file at *path*. Missing file is a no-op."""
    if not path.exists():
        return 0
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SessionError(f"Cannot read session state {path}: {exc}") from exc
    restored = registry.restore(data.get("sessions") if isinstance(data, dict) else None)
    logger.info("Restored %d session(s) from %s", restored, path)
    return restored


def save_sessions(registry: SessionRegistry, path: Path) -> None:
    """Write *registry* to the state file at *path* atomically (mode 0600)."""
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    tmp_path = path.with_suffix(".tmp")
    try:
        tmp_path.write_text(json.dumps({"sessions": registry.snapshot()}, indent=2), "utf-8")
        tmp_path.chmod(0o600)
        tmp_path.replace(path)
    except OSError as exc:
        tmp_path.unlink(missing_ok=True)
        raise SessionError(f"Cannot write session state {path}: {exc}") from exc
