"""Configuration for the browser MCP server."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Disable Playwright's document.fonts.ready wait before screenshots.
# Prevents indefinite hang in headless Chromium on WSL2/CI (playwright#28995).
os.environ.setdefault("PW_TEST_SCREENSHOT_NO_FONTS_READY", "1")


def _env_bool(name: str, default: bool) -> bool:
    val = (os.getenv(name) or "").strip().lower()
    if not val:
        return default
    return val in {"1", "true", "yes", "on"}


class Config:
    # Server bind, localhost by default
    DEFAULT_HOST = os.getenv("BROWSER_MCP_HOST", "127.0.0.1")
    DEFAULT_PORT = int(os.getenv("BROWSER_MCP_PORT", "3025"))
    LOG_LEVEL = os.getenv("BROWSER_MCP_LOG_LEVEL", "INFO").upper()

    SERVER_NAME = "browser-mcp"
    SERVER_DESCRIPTION = "A simple Playwright MCP server for browser automation"

    # Browser defaults
    HEADLESS = _env_bool("BROWSER_MCP_HEADLESS", False)
    LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
    VIEWPORT = {"width": 1280, "height": 800}
    LAUNCH_ON_STARTUP = _env_bool("BROWSER_MCP_LAUNCH_ON_STARTUP", True)

    # Timeouts (ms)
    SELECTOR_TIMEOUT = 5_000
    NAVIGATION_TIMEOUT = 30_000

    # Session recovery: retries after the first failed initialization
    SESSION_INIT_RETRIES = int(os.getenv("BROWSER_MCP_INIT_RETRIES", "1"))
    SESSION_RETRY_BACKOFF = float(os.getenv("BROWSER_MCP_RETRY_BACKOFF", "0.5"))  # seconds

    # Persistence paths
    SCREENSHOT_DIR = Path(os.getenv("BROWSER_MCP_SCREENSHOT_DIR", "screenshots")).resolve()

    @classmethod
    def ensure_dirs(cls) -> None:
        cls.SCREENSHOT_DIR.mkdir(parents=True, exist_ok=True)
