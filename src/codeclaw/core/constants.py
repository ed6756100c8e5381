"""CodeClaw constants: filesystem layout, timeouts, and limits."""

from __future__ import annotations

from enum import IntEnum

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------


class ExitCode(IntEnum):
    SUCCESS = 0
    CONFIG_ERROR = 2
    NETWORK_ERROR = 4
    AUTH_ERROR = 5


# ---------------------------------------------------------------------------
# Filesystem layout
# ---------------------------------------------------------------------------

CODECLAW_DIR_NAME = ".codeclaw"
CONFIG_FILENAME = "config.toml"
STATE_FILENAME = "state.json"
LOG_FILENAME = "codeclaw.log"

# ---------------------------------------------------------------------------
# Timeouts and limits
# ---------------------------------------------------------------------------

DEFAULT_APPROVAL_TIMEOUT_SECONDS = 120  # permission prompt deadline
MIN_APPROVAL_TIMEOUT_SECONDS = 10
MAX_APPROVAL_TIMEOUT_SECONDS = 3600
DETAIL_PREVIEW_CHARS = 200  # generic tool input dump in permission prompts
MAX_MESSAGE_CHARS = 4000  # longer messages are sent in chunks
MAX_VIEW_LINES = 200  # file browser preview

# ---------------------------------------------------------------------------
# Network
# ---------------------------------------------------------------------------

DEFAULT_TELEGRAM_POLL_TIMEOUT = 30  # long-poll timeout (seconds)
RECONNECT_BASE_DELAY_SECONDS = 1.0
RECONNECT_MAX_DELAY_SECONDS = 30.0
