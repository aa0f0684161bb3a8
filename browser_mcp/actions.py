"""
Tool implementations for the browser MCP server.

19 tools, each a thin wrapper around one or two Playwright calls. Handler-local
failures (selector timeouts, script errors, rejected cookies) come back as a
result payload with a flag and a message; anything else propagates to the
HTTP layer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine
from urllib.parse import urlparse

from pydantic import ValidationError

from .browser_engine import BrowserSession
from .config import Config
from .errors import InvalidParametersError, UnknownToolError, classify_error
from .models import (
    AuthenticateParams,
    DeleteCookiesParams,
    EvaluateScriptParams,
    GetCookiesParams,
    GetLocalStorageParams,
    NavigateParams,
    NoParams,
    SelectorParams,
    SetCookieParams,
    SetLocalStorageParams,
    ToolParams,
    TypeTextParams,
    WaitForSelectorParams,
)

log = logging.getLogger(__name__)

# Type for tool handlers
ToolHandler = Callable[[Any, Any, BrowserSession], Coroutine[Any, Any, dict]]


def _failure(exc: Exception, **fields: Any) -> dict:
    """Tool result for a handler-local failure."""
    return {**fields, **classify_error(exc).to_result()}


# ---------------------------------------------------------------------------
# Page tools
# ---------------------------------------------------------------------------

def _screenshot_stamp(now: datetime | None = None) -> str:
    """ISO timestamp made filename-safe: 2024-01-01T10-20-30-123Z."""
    now = now or datetime.now(timezone.utc)
    iso = now.isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return iso.replace(":", "-").replace(".", "-")


async def take_screenshot(page, params: NoParams, session: BrowserSession) -> dict:
    """Full-page PNG saved under the screenshot directory."""
    filename = f"screenshot-{_screenshot_stamp()}.png"
    Config.ensure_dirs()
    await page.screenshot(path=str(Config.SCREENSHOT_DIR / filename), full_page=True)
    return {"screenshotPath": f"/{filename}"}


def normalize_url(url: str) -> str:
    """Prefix https:// unless the URL already carries an http(s) scheme."""
    if not url.startswith(("http://", "https://")):
        return "https://" + url
    return url


async def navigate_to(page, params: NavigateParams, session: BrowserSession) -> dict:
    url = normalize_url(params.url)
    await page.goto(url, wait_until="networkidle", timeout=Config.NAVIGATION_TIMEOUT)
    return {
        "title": await page.title(),
        "url": page.url,
    }


async def get_page_content(page, params: NoParams, session: BrowserSession) -> dict:
    return {"content": await page.content()}


async def _wait_attached(page, selector: str, timeout: int | None = None) -> None:
    await page.wait_for_selector(
        selector,
        state="attached",
        timeout=Config.SELECTOR_TIMEOUT if timeout is None else timeout,
    )


async def click_element(page, params: SelectorParams, session: BrowserSession) -> dict:
    try:
        await _wait_attached(page, params.selector)
        await page.click(params.selector, timeout=Config.SELECTOR_TIMEOUT)
        return {"success": True}
    except Exception as e:
        log.warning("Error clicking element %s: %s", params.selector, e)
        return _failure(e, success=False)


async def type_text(page, params: TypeTextParams, session: BrowserSession) -> dict:
    try:
        await _wait_attached(page, params.selector)
        await page.locator(params.selector).first.press_sequentially(
            params.text, timeout=Config.SELECTOR_TIMEOUT,
        )
        return {"success": True}
    except Exception as e:
        log.warning("Error typing text into %s: %s", params.selector, e)
        return _failure(e, success=False)


async def get_element_text(page, params: SelectorParams, session: BrowserSession) -> dict:
    try:
        await _wait_attached(page, params.selector)
        text = await page.locator(params.selector).first.text_content(timeout=Config.SELECTOR_TIMEOUT)
        return {"text": (text or "").strip()}
    except Exception as e:
        log.warning("Error getting text from %s: %s", params.selector, e)
        return _failure(e, text="")


async def wait_for_selector(page, params: WaitForSelectorParams, session: BrowserSession) -> dict:
    try:
        await _wait_attached(page, params.selector, params.timeout)
        return {"success": True}
    except Exception as e:
        log.warning("Error waiting for selector %s: %s", params.selector, e)
        return _failure(e, success=False)


def stringify_result(value: Any) -> str:
    """Render an evaluation result the way JavaScript's String()/JSON.stringify would."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
    return str(value)


async def evaluate_script(page, params: EvaluateScriptParams, session: BrowserSession) -> dict:
    """Run the script body inside an IIFE so top-level ``return`` works."""
    try:
        result = await page.evaluate(f"(() => {{ {params.script} }})()")
        return {"result": stringify_result(result)}
    except Exception as e:
        log.warning("Error evaluating script: %s", e)
        return _failure(e, result="")


# ---------------------------------------------------------------------------
# Monitoring tools
# ---------------------------------------------------------------------------

async def capture_console_log(page, params: NoParams, session: BrowserSession) -> dict:
    try:
        session.console.arm(page)
        return {"success": True}
    except Exception as e:
        log.warning("Error capturing console logs: %s", e)
        return _failure(e, success=False)


async def get_console_logs(page, params: NoParams, session: BrowserSession) -> dict:
    return {"logs": session.console.snapshot()}


async def monitor_network(page, params: NoParams, session: BrowserSession) -> dict:
    try:
        await session.network.arm(page)
        return {"success": True}
    except Exception as e:
        log.warning("Error monitoring network: %s", e)
        return _failure(e, success=False)


async def get_network_requests(page, params: NoParams, session: BrowserSession) -> dict:
    return {"requests": session.network.snapshot()}


PERFORMANCE_TIMING_JS = """
() => {
    const timing = performance.timing || {};
    const navigation = performance.navigation || {};
    const fields = [
        'navigationStart', 'unloadEventStart', 'unloadEventEnd', 'redirectStart',
        'redirectEnd', 'fetchStart', 'domainLookupStart', 'domainLookupEnd',
        'connectStart', 'connectEnd', 'secureConnectionStart', 'requestStart',
        'responseStart', 'responseEnd', 'domLoading', 'domInteractive',
        'domContentLoadedEventStart', 'domContentLoadedEventEnd', 'domComplete',
        'loadEventStart', 'loadEventEnd',
    ];
    const t = {};
    for (const f of fields) t[f] = timing[f];
    const entries = performance.getEntriesByType('resource').map(entry => ({
        name: entry.name,
        entryType: entry.entryType,
        startTime: entry.startTime,
        duration: entry.duration,
        initiatorType: entry.initiatorType,
    }));
    return {
        timing: t,
        navigation: { type: navigation.type, redirectCount: navigation.redirectCount },
        entries,
    };
}
"""


async def get_performance_metrics(page, params: NoParams, session: BrowserSession) -> dict:
    """Browser counters from CDP Performance.getMetrics plus in-page navigation timing."""
    try:
        cdp = await page.context.new_cdp_session(page)
        try:
            await cdp.send("Performance.enable")
            metrics = await cdp.send("Performance.getMetrics")
        finally:
            try:
                await cdp.detach()
            except Exception as exc:
                log.debug("CDP detach failed: %s", exc)
        timing = await page.evaluate(PERFORMANCE_TIMING_JS)
        return {
            "metrics": {
                "chrome": metrics.get("metrics", []),
                "timing": timing,
            }
        }
    except Exception as e:
        log.warning("Error getting performance metrics: %s", e)
        return _failure(e, metrics={})


# ---------------------------------------------------------------------------
# Cookies, auth, storage
# ---------------------------------------------------------------------------

def _page_urls(page) -> list[str]:
    return [page.url] if page.url.startswith(("http://", "https://")) else []


async def get_cookies(page, params: GetCookiesParams, session: BrowserSession) -> dict:
    """Cookies for the given URLs, or for the current page when none are given.

    A non-http page has no cookies. ``context.cookies([])`` would return the
    whole context's jar, so it is never called with an empty list.
    """
    try:
        urls = params.urls or _page_urls(page)
        if not urls:
            return {"cookies": []}
        cookies = await page.context.cookies(urls)
        return {"cookies": cookies}
    except Exception as e:
        log.warning("Error getting cookies: %s", e)
        return _failure(e, cookies=[])


async def set_cookie(page, params: SetCookieParams, session: BrowserSession) -> dict:
    """Set one cookie.

    Playwright needs either a url or a domain/path pair; without a domain the
    cookie is scoped to the current page.
    """
    cookie: dict[str, Any] = {"name": params.name, "value": params.value}
    if params.domain:
        cookie["domain"] = params.domain
        cookie["path"] = params.path or "/"
    elif params.path:
        cookie["domain"] = urlparse(page.url).hostname or ""
        cookie["path"] = params.path
    else:
        cookie["url"] = page.url
    if params.expires is not None:
        cookie["expires"] = params.expires
    try:
        await page.context.add_cookies([cookie])
        return {"success": True}
    except Exception as e:
        log.warning("Error setting cookie: %s", e)
        return _failure(e, success=False)


# A cookie is only overwritten by one with the same name, path and domain
EXPIRE_COOKIES_JS = """
(cookies) => {
    const host = window.location.hostname;
    for (const { name, path, domain } of cookies) {
        const expired = `${name}=; expires=Thu, 01 Jan 1970 00:00:00 UTC; path=${path}`;
        document.cookie = expired;
        document.cookie = `${expired}; domain=${host}`;
        document.cookie = `${expired}; domain=.${host}`;
        if (domain) {
            document.cookie = `${expired}; domain=${domain}`;
        }
    }
}
"""


async def delete_cookies(page, params: DeleteCookiesParams, session: BrowserSession) -> dict:
    """Expire cookies in-page, host-only and for the host and its dot-prefixed parent domain.

    Named cookies are expired at path ``/``. Without names, every cookie visible
    for ``url`` (or the current page) is expired with its own path and domain.
    Expiry always runs on the current page's origin.
    """
    try:
        if params.names:
            targets = [{"name": name, "path": "/", "domain": None} for name in params.names]
        else:
            urls = [params.url] if params.url else _page_urls(page)
            cookies = await page.context.cookies(urls) if urls else []
            targets = [
                {"name": c["name"], "path": c.get("path") or "/", "domain": c.get("domain")}
                for c in cookies
            ]
        if targets:
            await page.evaluate(EXPIRE_COOKIES_JS, targets)
        return {"success": True}
    except Exception as e:
        log.warning("Error deleting cookies: %s", e)
        return _failure(e, success=False)


async def authenticate(page, params: AuthenticateParams, session: BrowserSession) -> dict:
    try:
        await session.authenticator.set_credentials(page, params.username, params.password)
        return {"success": True}
    except Exception as e:
        log.warning("Error setting authentication: %s", e)
        return _failure(e, success=False)


GET_LOCAL_STORAGE_JS = """
(k) => {
    if (k) {
        return { [k]: localStorage.getItem(k) };
    }
    const items = {};
    for (let i = 0; i < localStorage.length; i++) {
        const key = localStorage.key(i);
        items[key] = localStorage.getItem(key);
    }
    return items;
}
"""

SET_LOCAL_STORAGE_JS = "([k, v]) => { localStorage.setItem(k, v); }"


async def get_local_storage(page, params: GetLocalStorageParams, session: BrowserSession) -> dict:
    try:
        data = await page.evaluate(GET_LOCAL_STORAGE_JS, params.key)
        return {"data": data or {}}
    except Exception as e:
        log.warning("Error getting localStorage: %s", e)
        return _failure(e, data={})


async def set_local_storage(page, params: SetLocalStorageParams, session: BrowserSession) -> dict:
    try:
        await page.evaluate(SET_LOCAL_STORAGE_JS, [params.key, params.value])
        return {"success": True}
    except Exception as e:
        log.warning("Error setting localStorage: %s", e)
        return _failure(e, success=False)


# ---------------------------------------------------------------------------
# Tool registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    handler: ToolHandler
    params_model: type[ToolParams] = NoParams
    returns: dict[str, dict[str, str]] = field(default_factory=dict)


def _ret(name: str, type_: str, description: str) -> dict[str, dict[str, str]]:
    return {name: {"type": type_, "description": description}}


_SPECS: list[ToolSpec] = [
    ToolSpec("takeScreenshot", "Take a screenshot of the current page", take_screenshot,
             returns=_ret("screenshotPath", "string", "Path to the saved screenshot")),
    ToolSpec("navigateTo", "Navigate to a URL", navigate_to, NavigateParams,
             returns={**_ret("title", "string", "Title of the page"),
                      **_ret("url", "string", "Current URL")}),
    ToolSpec("getPageContent", "Get the HTML content of the current page", get_page_content,
             returns=_ret("content", "string", "HTML content of the page")),
    ToolSpec("clickElement", "Click an element on the page", click_element, SelectorParams,
             returns=_ret("success", "boolean", "Whether the click was successful")),
    ToolSpec("typeText", "Type text into an input field", type_text, TypeTextParams,
             returns=_ret("success", "boolean", "Whether the typing was successful")),
    ToolSpec("getElementText", "Get text content from an element", get_element_text, SelectorParams,
             returns=_ret("text", "string", "Text content of the element")),
    ToolSpec("waitForSelector", "Wait for an element to appear on the page", wait_for_selector,
             WaitForSelectorParams,
             returns=_ret("success", "boolean", "Whether the element appeared before timeout")),
    ToolSpec("evaluateScript", "Run JavaScript code on the page", evaluate_script, EvaluateScriptParams,
             returns=_ret("result", "string", "Result of the script execution (stringified)")),
    ToolSpec("captureConsoleLog", "Start capturing console logs from the page", capture_console_log,
             returns=_ret("success", "boolean", "Whether console log capture was started successfully")),
    ToolSpec("getConsoleLogs", "Get captured console logs", get_console_logs,
             returns=_ret("logs", "array", "Array of console log entries")),
    ToolSpec("monitorNetwork", "Start monitoring network requests", monitor_network,
             returns=_ret("success", "boolean", "Whether network monitoring was started successfully")),
    ToolSpec("getNetworkRequests", "Get captured network requests", get_network_requests,
             returns=_ret("requests", "array", "Array of network request data")),
    ToolSpec("getPerformanceMetrics", "Get performance metrics for the current page", get_performance_metrics,
             returns=_ret("metrics", "object", "Performance metrics")),
    ToolSpec("getCookies", "Get cookies for the current page", get_cookies, GetCookiesParams,
             returns=_ret("cookies", "array", "Array of cookies")),
    ToolSpec("setCookie", "Set a cookie", set_cookie, SetCookieParams,
             returns=_ret("success", "boolean", "Whether the cookie was set successfully")),
    ToolSpec("deleteCookies", "Delete cookies", delete_cookies, DeleteCookiesParams,
             returns=_ret("success", "boolean", "Whether cookies were deleted successfully")),
    ToolSpec("authenticate", "Set HTTP authentication credentials", authenticate, AuthenticateParams,
             returns=_ret("success", "boolean", "Whether authentication was set successfully")),
    ToolSpec("getLocalStorage", "Get localStorage data", get_local_storage, GetLocalStorageParams,
             returns=_ret("data", "object", "localStorage data")),
    ToolSpec("setLocalStorage", "Set localStorage data", set_local_storage, SetLocalStorageParams,
             returns=_ret("success", "boolean", "Whether localStorage was set successfully")),
]

TOOLS: dict[str, ToolSpec] = {spec.name: spec for spec in _SPECS}


def _validation_message(tool: str, exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "parameters"
        problems.append(f"{loc}: {err.get('msg', 'invalid')}")
    return f"Invalid parameters for {tool}: " + "; ".join(problems)


async def execute_tool(session: BrowserSession, tool: str, parameters: dict | None) -> dict:
    """Run a tool by name against the shared session.

    Args:
        session: The process-wide BrowserSession
        tool: Tool name (e.g. 'navigateTo')
        parameters: Raw parameter object from the request

    Raises:
        UnknownToolError / InvalidParametersError before the session is touched,
        SessionInitError if the browser cannot be brought up, and whatever the
        handler lets escape.
    """
    spec = TOOLS.get(tool)
    if spec is None:
        raise UnknownToolError(tool)

    try:
        params = spec.params_model.model_validate(parameters or {})
    except ValidationError as e:
        raise InvalidParametersError(_validation_message(tool, e)) from e

    page = await session.ensure()
    return await spec.handler(page, params, session)
