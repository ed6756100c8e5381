"""Permission prompt text shown to the human."""

from __future__ import annotations

import json
from typing import Any

from codeclaw.core.constants import DETAIL_PREVIEW_CHARS

PROMPT_HEADER = "🔧 Permission needed"

# tool name → (label, input field)
_DETAIL_FIELDS: dict[str, tuple[str, str]] = {
    "Edit": ("File", "file_path"),
    "MultiEdit": ("File", "file_path"),
    "Write": ("File", "file_path"),
    "Read": ("File", "file_path"),
    "NotebookEdit": ("File", "notebook_path"),
    "Bash": ("Command", "command"),
    "Glob": ("Pattern", "pattern"),
    "Grep": ("Pattern", "pattern"),
    "WebFetch": ("URL", "url"),
    "WebSearch": ("Query", "query"),
}


def format_action_detail(action_kind: str, action_detail: dict[str, Any]) -> str:
    """One-line description of what the tool wants to do."""
    if action_kind in _DETAIL_FIELDS:
        label, key = _DETAIL_FIELDS[action_kind]
        return f"{label}: {action_detail.get(key) or 'unknown'}"
    try:
        dumped = json.dumps(action_detail, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        dumped = str(action_detail)
    return f"Input: {dumped[:DETAIL_PREVIEW_CHARS]}"


def format_permission_prompt(
    action_kind: str,
    action_detail: dict[str, Any],
    reason: str = "",
) -> str:
    lines = [
        PROMPT_HEADER,
        "",
        f"Tool: {action_kind}",
        format_action_detail(action_kind, action_detail),
    ]
    if reason:
        lines.append(f"Reason: {reason}")
    lines += [
        "",
        "Reply to this message with:",
        "  yes - approve once",
        "  always - always approve this tool",
        "  no - deny",
    ]
    return "\n".join(lines)
