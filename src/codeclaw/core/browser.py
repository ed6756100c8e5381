"""
File browser — read-only directory listings and file views for the chat.

``browse`` lists a directory (directories first, hidden entries skipped) and
remembers the listing per conversation, so a bare number reply opens the
matching entry. ``view_file`` returns the first lines of a text file in a
fenced code block. Both refuse paths that resolve outside the conversation's
working directory.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from codeclaw.core.constants import MAX_VIEW_LINES

logger = logging.getLogger(__name__)

# file suffix → code fence language
_LANGUAGES: dict[str, str] = {
    ".js": "javascript",
    ".mjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".jsx": "jsx",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".json": "json",
    ".md": "markdown",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".toml": "toml",
    ".css": "css",
    ".html": "html",
    ".sh": "bash",
    ".sql": "sql",
    ".rb": "ruby",
    ".php": "php",
    ".c": "c",
    ".cpp": "cpp",
    ".h": "c",
}


def detect_language(filename: str) -> str:
    return _LANGUAGES.get(Path(filename).suffix, "text")


def format_size(size: int) -> str:
    """Format a file size for display."""
    if size < 1024:
        return f"{size} B"
    elif size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    else:
        return f"{size / (1024 * 1024):.1f} MB"


def _inside(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class ListingEntry:
    name: str
    rel_path: str
    is_dir: bool


@dataclass
class _Listing:
    root: Path
    entries: list[ListingEntry]


class FileBrowser:
    def __init__(self) -> None:
        self._listings: dict[str, _Listing] = {}

    def browse(self, conversation_id: str, dir_path: str, root: Path) -> str:
        root = root.resolve()
        full_path = (root / dir_path).resolve()
        if not _inside(full_path, root):
            return "Cannot navigate outside the project directory."

        try:
            children = list(full_path.iterdir())
        except FileNotFoundError:
            return f"Directory not found: {dir_path}"
        except NotADirectoryError:
            return f"Not a directory: {dir_path}"
        except PermissionError:
            return f"Access denied: {dir_path}"

        visible = [p for p in children if not p.name.startswith(".")]
        visible.sort(key=lambda p: (not p.is_dir(), p.name.lower()))
        entries = [
            ListingEntry(
                name=p.name,
                rel_path=str(p.relative_to(root)),
                is_dir=p.is_dir(),
            )
            for p in visible
        ]
        self._listings[conversation_id] = _Listing(root=root, entries=entries)

        rel_dir = str(full_path.relative_to(root)) if full_path != root else "."
        lines = [f"📁 {rel_dir} ({len(entries)} items)", ""]
        for i, entry in enumerate(entries, start=1):
            icon, suffix = ("📁", "/") if entry.is_dir else ("📄", "")
            lines.append(f"{i}. {icon} {entry.name}{suffix}")
        lines += ["", "Reply with a number to open."]
        return "\n".join(lines)

    def view_file(self, file_path: str, root: Path) -> str:
        root = root.resolve()
        full_path = (root / file_path).resolve()
        if not _inside(full_path, root):
            return "Cannot access files outside the project directory."

        try:
            content = full_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return f"File not found: {file_path}"
        except IsADirectoryError:
            return f"Not a file: {file_path}"
        except PermissionError:
            return f"Access denied: {file_path}"
        except UnicodeDecodeError:
            return f"Binary file: {file_path} ({format_size(full_path.stat().st_size)})"
        except OSError as exc:
            logger.warning("Cannot read %s: %s", full_path, exc)
            return f"Cannot read file: {file_path}"

        lines = content.split("\n")
        language = detect_language(file_path)
        shown = "\n".join(lines[:MAX_VIEW_LINES])
        text = f"📄 {file_path} ({len(lines)} lines, {language})\n```{language}\n{shown}\n```"
        if len(lines) > MAX_VIEW_LINES:
            text += f"\n... truncated at {MAX_VIEW_LINES} lines"
        return text

    def open_entry(self, conversation_id: str, number: int) -> str | None:
        """
        Open entry *number* (1-based) of the conversation's last listing.

        Returns None when the conversation has no listing.
        """
        listing = self._listings.get(conversation_id)
        if listing is None:
            return None
        if not 1 <= number <= len(listing.entries):
            return f"Invalid selection. Pick 1-{len(listing.entries)}."
        entry = listing.entries[number - 1]
        if entry.is_dir:
            return self.browse(conversation_id, entry.rel_path, listing.root)
        return self.view_file(entry.rel_path, listing.root)

    def has_listing(self, conversation_id: str) -> bool:
        return conversation_id in self._listings

    def clear(self, conversation_id: str) -> None:
        self._listings.pop(conversation_id, None)
