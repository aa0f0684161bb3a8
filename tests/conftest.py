from __future__ import annotations

from pathlib import Path

import pytest

from browser_mcp.browser_engine import BrowserSession
from browser_mcp.config import Config

from fakes import FakePlaywright


@pytest.fixture(autouse=True)
def _test_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(Config, "SCREENSHOT_DIR", tmp_path / "screenshots")
    monkeypatch.setattr(Config, "SESSION_RETRY_BACKOFF", 0.0)
    monkeypatch.setattr(Config, "SESSION_INIT_RETRIES", 1)
    monkeypatch.setattr(Config, "HEADLESS", False)


@pytest.fixture
def fake_pw() -> FakePlaywright:
    return FakePlaywright()


@pytest.fixture
def session(fake_pw: FakePlaywright) -> BrowserSession:
    async def start():
        fake_pw.starts += 1
        return fake_pw

    return BrowserSession(start_playwright=start)
