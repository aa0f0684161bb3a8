"""Error types and AI-friendly error transformation.

Two tiers:
- BrowserError: structured, handler-local failure folded into a tool result
- ToolError and subclasses: dispatch-level failures mapped to an HTTP status
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

from .models import Recoverability


# ---------------------------------------------------------------------------
# Dispatch-level exceptions
# ---------------------------------------------------------------------------

class ToolError(Exception):
    """Base for failures that abort a request. ``status`` is the HTTP status."""
    status: HTTPStatus = HTTPStatus.INTERNAL_SERVER_ERROR


class UnknownToolError(ToolError):
    status = HTTPStatus.BAD_REQUEST

    def __init__(self, tool: str):
        super().__init__(f"Unknown tool: {tool}")
        self.tool = tool


class InvalidParametersError(ToolError):
    status = HTTPStatus.BAD_REQUEST


class SessionInitError(ToolError):
    status = HTTPStatus.INTERNAL_SERVER_ERROR


# ---------------------------------------------------------------------------
# Typed error
# ---------------------------------------------------------------------------

@dataclass
class BrowserError:
    """Structured error with recoverability and actionable guidance.

    - code: stable identifier for programmatic matching
    - message: human/agent readable description
    - recoverability: RECOVERABLE → retry, ESCALATABLE → change strategy, NON_RECOVERABLE → abort
    - agent_action: what the caller should do next
    """
    code: str
    message: str
    recoverability: Recoverability = Recoverability.NON_RECOVERABLE
    agent_action: str = ""

    def to_agent_message(self) -> str:
        """Format for inclusion in tool results."""
        parts = [self.message]
        if self.agent_action:
            parts.append(f"Suggested: {self.agent_action}")
        return " ".join(parts)

    def to_result(self) -> dict[str, str]:
        """Fields merged into a tool's failure payload."""
        return {
            "error": self.to_agent_message(),
            "code": self.code,
            "recoverability": self.recoverability.value,
        }


# ---------------------------------------------------------------------------
# Error catalog: stable codes with default recoverability and guidance
# ---------------------------------------------------------------------------

_CATALOG: dict[str, dict[str, Any]] = {
    "TIMEOUT_ACTION": {
        "recoverability": Recoverability.RECOVERABLE,
        "agent_action": "Check the selector with getPageContent, then retry.",
    },
    "ELEMENT_NOT_VISIBLE": {
        "recoverability": Recoverability.RECOVERABLE,
        "agent_action": "Scroll element into view or dismiss overlays, then retry.",
    },
    "ELEMENT_DETACHED": {
        "recoverability": Recoverability.RECOVERABLE,
        "agent_action": "Page content changed. Retry against the new DOM.",
    },
    "INVALID_SELECTOR": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "agent_action": "Fix the CSS selector syntax.",
    },
    "SCRIPT_ERROR": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "agent_action": "Fix the script. It threw inside the page.",
    },
    "CONTEXT_DESTROYED": {
        "recoverability": Recoverability.RECOVERABLE,
        "agent_action": "Page navigated during the call. Retry.",
    },
    "TARGET_CLOSED": {
        "recoverability": Recoverability.ESCALATABLE,
        "agent_action": "Page was closed. The next request reinitializes the session.",
    },
    "NETWORK_ERROR": {
        "recoverability": Recoverability.ESCALATABLE,
        "agent_action": "Check the URL and connectivity.",
    },
    "INVALID_COOKIE": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "agent_action": "Navigate to a real page first or pass domain and path.",
    },
    "UNKNOWN": {
        "recoverability": Recoverability.NON_RECOVERABLE,
        "agent_action": "",
    },
}


def create_error(code: str, message: str) -> BrowserError:
    """Create a BrowserError with the catalog's recoverability and guidance for ``code``."""
    defaults = _CATALOG.get(code, _CATALOG["UNKNOWN"])
    return BrowserError(
        code=code,
        message=message,
        recoverability=defaults["recoverability"],
        agent_action=defaults.get("agent_action", ""),
    )


# ---------------------------------------------------------------------------
# Classification of Playwright exceptions
# ---------------------------------------------------------------------------

def _extract_timeout(msg: str) -> str:
    m = re.search(r"(\d+)ms", msg)
    return m.group(1) if m else "5000"


def _extract_net_error(msg: str) -> str:
    m = re.search(r"net::(ERR_\w+)", msg)
    return m.group(1) if m else "unknown network error"


def _first_line(msg: str) -> str:
    return msg.strip().splitlines()[0] if msg.strip() else msg


_PATTERN_MAP: list[tuple[str, str, object]] = [
    (
        "TimeoutError",
        "TIMEOUT_ACTION",
        lambda e: f"Timed out after {_extract_timeout(str(e))}ms.",
    ),
    (
        "is not a valid selector",
        "INVALID_SELECTOR",
        lambda e: f"Invalid selector: {_first_line(str(e))}",
    ),
    (
        "not visible",
        "ELEMENT_NOT_VISIBLE",
        lambda e: "Element is present but not visible (hidden by CSS, behind overlay, or off-screen).",
    ),
    (
        "detached",
        "ELEMENT_DETACHED",
        lambda e: "Element was removed from the DOM (page content changed).",
    ),
    (
        "Execution context was destroyed",
        "CONTEXT_DESTROYED",
        lambda e: "Page navigated during the call.",
    ),
    (
        "has been closed",
        "TARGET_CLOSED",
        lambda e: "Browser page or context was closed.",
    ),
    (
        "Target closed",
        "TARGET_CLOSED",
        lambda e: "Browser page or context was closed.",
    ),
    (
        "net::ERR_",
        "NETWORK_ERROR",
        lambda e: f"Network error: {_extract_net_error(str(e))}.",
    ),
    # Before "cookie": a script may throw with any text in its message
    (
        ".evaluate:",
        "SCRIPT_ERROR",
        lambda e: f"Script error: {_first_line(str(e))}",
    ),
    (
        "cookie",
        "INVALID_COOKIE",
        lambda e: f"Cookie rejected: {_first_line(str(e))}",
    ),
]


def classify_error(error: Exception) -> BrowserError:
    """Classify a Playwright/browser exception into a structured BrowserError."""
    msg = f"{type(error).__name__}: {error}"
    for pattern, code, msg_fn in _PATTERN_MAP:
        if pattern.lower() in msg.lower():
            return create_error(code, msg_fn(error))
    return create_error("UNKNOWN", f"Browser error: {_first_line(str(error)) or type(error).__name__}")
