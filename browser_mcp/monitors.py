"""Page-bound listeners: console capture, network capture, HTTP auth.

Each monitor is owned by the BrowserSession and bound to at most one page at
a time. Replacing the page detaches the monitor; the buffer stays readable
until the next arm().
"""

from __future__ import annotations

import logging
from typing import Any

from .models import ConsoleLogEntry, NetworkRequestEntry, NetworkResponse

log = logging.getLogger(__name__)


class ConsoleMonitor:
    """Buffers console messages emitted by the page while active."""

    def __init__(self) -> None:
        self.entries: list[ConsoleLogEntry] = []
        self.active = False
        self._page: Any = None

    def arm(self, page: Any) -> None:
        """Clear the buffer and start capturing. Registers one listener per page."""
        self.entries = []
        self.active = True
        if self._page is not page:
            page.on("console", self._on_console)
            self._page = page

    def detach(self) -> None:
        self.active = False
        self._page = None

    def _on_console(self, message: Any) -> None:
        if not self.active:
            return
        self.entries.append(ConsoleLogEntry(level=message.type, text=message.text))

    def snapshot(self) -> list[dict[str, Any]]:
        return [e.model_dump(by_alias=True) for e in self.entries]


class NetworkMonitor:
    """Records requests via the CDP Network domain and attaches responses by requestId."""

    def __init__(self) -> None:
        self.entries: list[NetworkRequestEntry] = []
        self.active = False
        self._by_id: dict[str, NetworkRequestEntry] = {}
        self._page: Any = None
        self._cdp: Any = None

    async def arm(self, page: Any) -> None:
        """Clear the buffer and start capturing.

        The CDP session and its listeners are created once per page; re-arming
        on the same page only resets the buffer.
        """
        self.entries = []
        self._by_id = {}
        self.active = False
        if self._page is not page:
            cdp = await page.context.new_cdp_session(page)
            await cdp.send("Network.enable")
            cdp.on("Network.requestWillBeSent", self._on_request)
            cdp.on("Network.responseReceived", self._on_response)
            self._cdp = cdp
            self._page = page
        self.active = True

    def detach(self) -> None:
        self.active = False
        self._page = None
        self._cdp = None

    def _on_request(self, event: dict) -> None:
        if not self.active:
            return
        request = event.get("request", {})
        entry = NetworkRequestEntry(
            request_id=event["requestId"],
            url=request.get("url", ""),
            method=request.get("method", ""),
            headers=request.get("headers", {}),
            resource_type=event.get("type"),
        )
        self.entries.append(entry)
        # Redirects reuse the requestId; the first entry keeps the match
        self._by_id.setdefault(entry.request_id, entry)

    def _on_response(self, event: dict) -> None:
        if not self.active:
            return
        entry = self._by_id.get(event.get("requestId"))
        if entry is None:
            return
        response = event.get("response", {})
        entry.response = NetworkResponse(
            status=response.get("status", 0),
            headers=response.get("headers", {}),
            mime_type=response.get("mimeType"),
        )

    def snapshot(self) -> list[dict[str, Any]]:
        return [e.to_wire() for e in self.entries]


class HttpAuthenticator:
    """Answers HTTP auth challenges with stored credentials via the CDP Fetch domain.

    Fetch.enable pauses every request, so each paused request is continued
    unchanged. A second challenge for the same request means the credentials
    were rejected; it is cancelled instead of looping.
    """

    def __init__(self) -> None:
        self.credentials: dict[str, str] | None = None
        self._page: Any = None
        self._cdp: Any = None
        self._attempted: set[str] = set()

    async def set_credentials(self, page: Any, username: str, password: str) -> None:
        self.credentials = {"username": username, "password": password}
        if self._page is page:
            return
        cdp = await page.context.new_cdp_session(page)
        await cdp.send("Fetch.enable", {"handleAuthRequests": True})
        cdp.on("Fetch.requestPaused", self._on_request_paused)
        cdp.on("Fetch.authRequired", self._on_auth_required)
        self._cdp = cdp
        self._page = page

    def detach(self) -> None:
        self._page = None
        self._cdp = None
        self._attempted.clear()

    async def _on_request_paused(self, event: dict) -> None:
        cdp = self._cdp
        if cdp is None:
            return
        try:
            await cdp.send("Fetch.continueRequest", {"requestId": event["requestId"]})
        except Exception as exc:
            log.debug("Fetch.continueRequest failed: %s", exc)

    async def _on_auth_required(self, event: dict) -> None:
        cdp = self._cdp
        if cdp is None:
            return
        request_id = event["requestId"]
        if self.credentials is None or request_id in self._attempted:
            challenge = {"response": "CancelAuth"}
        else:
            self._attempted.add(request_id)
            challenge = {"response": "ProvideCredentials", **self.credentials}
        try:
            await cdp.send("Fetch.continueWithAuth", {
                "requestId": request_id,
                "authChallengeResponse": challenge,
            })
        except Exception as exc:
            log.debug("Fetch.continueWithAuth failed: %s", exc)
