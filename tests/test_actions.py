"""Tool handlers driven through execute_tool against the fake browser."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest
import pytest_asyncio

from browser_mcp.actions import (
    EXPIRE_COOKIES_JS,
    GET_LOCAL_STORAGE_JS,
    SET_LOCAL_STORAGE_JS,
    TOOLS,
    _screenshot_stamp,
    execute_tool,
    normalize_url,
    stringify_result,
)
from browser_mcp.config import Config
from browser_mcp.errors import InvalidParametersError, UnknownToolError

from fakes import FakeConsoleMessage


@pytest_asyncio.fixture
async def page(session):
    return await session.ensure()


def test_registry_has_every_tool():
    assert list(TOOLS) == [
        "takeScreenshot", "navigateTo", "getPageContent", "clickElement", "typeText",
        "getElementText", "waitForSelector", "evaluateScript", "captureConsoleLog",
        "getConsoleLogs", "monitorNetwork", "getNetworkRequests", "getPerformanceMetrics",
        "getCookies", "setCookie", "deleteCookies", "authenticate", "getLocalStorage",
        "setLocalStorage",
    ]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_unknown_tool_rejected_before_launch(session, fake_pw):
    with pytest.raises(UnknownToolError, match="Unknown tool: flyToMoon"):
        await execute_tool(session, "flyToMoon", {})
    assert fake_pw.chromium.attempts == 0


@pytest.mark.asyncio
async def test_missing_parameter_rejected_before_launch(session, fake_pw):
    with pytest.raises(InvalidParametersError, match="url"):
        await execute_tool(session, "navigateTo", {})
    assert fake_pw.chromium.attempts == 0


@pytest.mark.asyncio
async def test_negative_wait_timeout_rejected(session):
    with pytest.raises(InvalidParametersError, match="timeout"):
        await execute_tool(session, "waitForSelector", {"selector": "#x", "timeout": -1})


@pytest.mark.asyncio
async def test_none_parameters_treated_as_empty(session):
    result = await execute_tool(session, "getPageContent", None)
    assert result["content"].startswith("<html>")


# ---------------------------------------------------------------------------
# Page tools
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("raw,expected", [
    ("example.com", "https://example.com"),
    ("http://example.com", "http://example.com"),
    ("https://example.com/a?b=c", "https://example.com/a?b=c"),
    ("localhost:8080/path", "https://localhost:8080/path"),
])
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.asyncio
async def test_navigate_prefixes_scheme_and_reports_title(session, page):
    page.page_title = "Example Domain"

    result = await execute_tool(session, "navigateTo", {"url": "example.com"})

    assert result == {"title": "Example Domain", "url": "https://example.com"}
    url, kwargs = page.goto_calls[0]
    assert url == "https://example.com"
    assert kwargs["wait_until"] == "networkidle"


@pytest.mark.asyncio
async def test_navigate_failure_propagates(session, page):
    page.goto_error = RuntimeError("Page.goto: net::ERR_NAME_NOT_RESOLVED at https://nope.invalid/")

    with pytest.raises(RuntimeError, match="ERR_NAME_NOT_RESOLVED"):
        await execute_tool(session, "navigateTo", {"url": "nope.invalid"})


def test_screenshot_stamp_is_filename_safe():
    when = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)
    assert _screenshot_stamp(when) == "2024-01-02T03-04-05-678Z"


@pytest.mark.asyncio
async def test_take_screenshot_writes_full_page_png(session, page):
    result = await execute_tool(session, "takeScreenshot", {})

    path = result["screenshotPath"]
    assert re.fullmatch(r"/screenshot-\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z\.png", path)
    assert (Config.SCREENSHOT_DIR / path.lstrip("/")).exists()
    assert page.screenshots[0]["full_page"] is True


@pytest.mark.asyncio
async def test_get_page_content(session, page):
    page.html = "<html><body><h1>hi</h1></body></html>"
    assert await execute_tool(session, "getPageContent", {}) == {"content": page.html}


@pytest.mark.asyncio
async def test_click_waits_for_attached_then_clicks(session, page):
    page.elements["button.buy"] = "Buy"

    result = await execute_tool(session, "clickElement", {"selector": "button.buy"})

    assert result == {"success": True}
    assert page.waits == [("button.buy", {"state": "attached", "timeout": 5000})]
    assert page.clicked == ["button.buy"]


@pytest.mark.asyncio
async def test_click_missing_element_reports_failure(session, page):
    result = await execute_tool(session, "clickElement", {"selector": "#nope"})

    assert result["success"] is False
    assert result["code"] == "TIMEOUT_ACTION"
    assert result["recoverability"] == "recoverable"
    assert "Timed out after 5000ms" in result["error"]
    assert page.clicked == []


@pytest.mark.asyncio
async def test_type_text_into_first_match(session, page):
    page.elements["input[name=q]"] = ""

    result = await execute_tool(session, "typeText", {"selector": "input[name=q]", "text": "hello"})

    assert result == {"success": True}
    assert page.typed == [("input[name=q]", "hello")]


@pytest.mark.asyncio
async def test_type_text_missing_element(session, page):
    result = await execute_tool(session, "typeText", {"selector": "#q", "text": "hello"})
    assert result["success"] is False
    assert page.typed == []


@pytest.mark.asyncio
async def test_get_element_text_is_trimmed(session, page):
    page.elements["h1"] = "  Welcome back \n"
    assert await execute_tool(session, "getElementText", {"selector": "h1"}) == {"text": "Welcome back"}


@pytest.mark.asyncio
async def test_get_element_text_empty_content(session, page):
    page.elements["div.empty"] = None
    assert await execute_tool(session, "getElementText", {"selector": "div.empty"}) == {"text": ""}


@pytest.mark.asyncio
async def test_get_element_text_missing_element(session, page):
    result = await execute_tool(session, "getElementText", {"selector": "h2"})
    assert result["text"] == ""
    assert result["code"] == "TIMEOUT_ACTION"


@pytest.mark.asyncio
async def test_wait_for_selector_default_and_custom_timeout(session, page):
    page.elements["#ready"] = ""

    assert await execute_tool(session, "waitForSelector", {"selector": "#ready"}) == {"success": True}
    assert await execute_tool(session, "waitForSelector", {"selector": "#ready", "timeout": 250}) == {"success": True}

    assert [w[1]["timeout"] for w in page.waits] == [5000, 250]


@pytest.mark.asyncio
async def test_wait_for_selector_timeout(session, page):
    result = await execute_tool(session, "waitForSelector", {"selector": "#late", "timeout": 100})
    assert result["success"] is False
    assert "100ms" in result["error"]


# ---------------------------------------------------------------------------
# Evaluate
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value,expected", [
    (None, ""),
    (True, "true"),
    (False, "false"),
    (42, "42"),
    (42.0, "42"),
    (1.5, "1.5"),
    (0, "0"),
    ("", ""),
    ("text", "text"),
    ({"a": 1}, '{"a":1}'),
    ([1, "x"], '[1,"x"]'),
])
def test_stringify_result(value, expected):
    assert stringify_result(value) == expected


@pytest.mark.asyncio
async def test_evaluate_wraps_body_in_iife(session, page):
    page.evaluate_handler = lambda expression, arg: 42

    result = await execute_tool(session, "evaluateScript", {"script": "return 6 * 7"})

    assert result == {"result": "42"}
    assert page.evaluations[-1][0] == "(() => { return 6 * 7 })()"


@pytest.mark.asyncio
@pytest.mark.parametrize("value,expected", [(0, "0"), (False, "false"), ("", "")])
async def test_evaluate_keeps_falsy_results(session, page, value, expected):
    page.evaluate_handler = lambda expression, arg: value

    result = await execute_tool(session, "evaluateScript", {"script": "return x"})

    assert result == {"result": expected}


@pytest.mark.asyncio
async def test_evaluate_error_is_reported(session, page):
    page.evaluate_handler = lambda expression, arg: RuntimeError(
        "Page.evaluate: ReferenceError: nope is not defined"
    )

    result = await execute_tool(session, "evaluateScript", {"script": "return nope"})

    assert result["result"] == ""
    assert result["code"] == "SCRIPT_ERROR"
    assert "ReferenceError" in result["error"]


# ---------------------------------------------------------------------------
# Monitoring
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_console_capture_round_trip(session, page):
    assert await execute_tool(session, "captureConsoleLog", {}) == {"success": True}
    assert await execute_tool(session, "captureConsoleLog", {}) == {"success": True}
    page.emit("console", FakeConsoleMessage("log", "hello"))

    result = await execute_tool(session, "getConsoleLogs", {})

    assert [(e["type"], e["text"]) for e in result["logs"]] == [("log", "hello")]
    assert len(page.handlers["console"]) == 1


@pytest.mark.asyncio
async def test_console_logs_empty_before_capture(session):
    assert await execute_tool(session, "getConsoleLogs", {}) == {"logs": []}


@pytest.mark.asyncio
async def test_network_monitoring_round_trip(session, page):
    assert await execute_tool(session, "monitorNetwork", {}) == {"success": True}
    cdp = page.context.cdp_sessions[0]
    await cdp.dispatch("Network.requestWillBeSent", {
        "requestId": "42",
        "request": {"url": "https://example.com/api", "method": "POST", "headers": {}},
        "type": "XHR",
    })
    await cdp.dispatch("Network.responseReceived", {
        "requestId": "42",
        "response": {"status": 201, "headers": {}, "mimeType": "application/json"},
    })

    result = await execute_tool(session, "getNetworkRequests", {})

    (entry,) = result["requests"]
    assert entry["method"] == "POST"
    assert entry["type"] == "XHR"
    assert entry["response"]["status"] == 201


@pytest.mark.asyncio
async def test_network_monitoring_failure_reported(session, page):
    page.context.cdp_error = RuntimeError("Target closed")

    result = await execute_tool(session, "monitorNetwork", {})

    assert result["success"] is False
    assert result["code"] == "TARGET_CLOSED"


@pytest.mark.asyncio
async def test_performance_metrics(session, page):
    page.context.cdp_responses["Performance.getMetrics"] = {
        "metrics": [{"name": "Nodes", "value": 12}],
    }
    page.evaluate_handler = lambda expression, arg: {"timing": {"navigationStart": 1}, "entries": []}

    result = await execute_tool(session, "getPerformanceMetrics", {})

    assert result["metrics"]["chrome"] == [{"name": "Nodes", "value": 12}]
    assert result["metrics"]["timing"]["timing"] == {"navigationStart": 1}
    cdp = page.context.cdp_sessions[0]
    assert cdp.methods() == ["Performance.enable", "Performance.getMetrics"]
    assert cdp.detached


@pytest.mark.asyncio
async def test_performance_metrics_failure(session, page):
    page.context.cdp_error = RuntimeError("Target page, context or browser has been closed")

    result = await execute_tool(session, "getPerformanceMetrics", {})

    assert result["metrics"] == {}
    assert result["code"] == "TARGET_CLOSED"


# ---------------------------------------------------------------------------
# Cookies
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_cookies_defaults_to_current_page(session, page):
    page.url = "https://example.com/account"
    page.context.cookie_jar = [
        {"name": "sid", "value": "abc", "domain": "example.com", "path": "/"},
        {"name": "other", "value": "x", "domain": "elsewhere.test", "path": "/"},
    ]

    result = await execute_tool(session, "getCookies", {})

    assert [c["name"] for c in result["cookies"]] == ["sid"]
    assert page.context.cookie_queries[-1] == ["https://example.com/account"]


@pytest.mark.asyncio
async def test_get_cookies_on_blank_page_returns_nothing(session, page):
    page.context.cookie_jar = [{"name": "sid", "value": "secret", "domain": "bank.test", "path": "/"}]

    result = await execute_tool(session, "getCookies", {})

    assert result == {"cookies": []}
    assert page.context.cookie_queries == []


@pytest.mark.asyncio
async def test_get_cookies_accepts_single_url(session, page):
    await execute_tool(session, "getCookies", {"urls": "https://shop.test/"})
    assert page.context.cookie_queries[-1] == ["https://shop.test/"]


@pytest.mark.asyncio
async def test_set_cookie_scoped_to_page_url(session, page):
    page.url = "https://example.com/"

    result = await execute_tool(session, "setCookie", {"name": "theme", "value": "dark"})

    assert result == {"success": True}
    assert page.context.cookie_jar == [{"name": "theme", "value": "dark", "url": "https://example.com/"}]


@pytest.mark.asyncio
async def test_set_cookie_with_domain_and_expiry(session, page):
    await execute_tool(session, "setCookie", {
        "name": "sid", "value": "1", "domain": ".example.com", "expires": 1893456000,
    })

    assert page.context.cookie_jar == [{
        "name": "sid", "value": "1", "domain": ".example.com", "path": "/", "expires": 1893456000,
    }]


@pytest.mark.asyncio
async def test_set_cookie_with_path_only_uses_page_host(session, page):
    page.url = "https://app.example.com/dashboard"

    await execute_tool(session, "setCookie", {"name": "a", "value": "b", "path": "/dashboard"})

    assert page.context.cookie_jar[0]["domain"] == "app.example.com"
    assert page.context.cookie_jar[0]["path"] == "/dashboard"


@pytest.mark.asyncio
async def test_set_cookie_on_blank_page_fails(session, page):
    result = await execute_tool(session, "setCookie", {"name": "a", "value": "b"})

    assert result["success"] is False
    assert result["code"] == "INVALID_COOKIE"
    assert page.context.cookie_jar == []


@pytest.mark.asyncio
async def test_cookies_survive_page_replacement(session, page):
    page.url = "https://example.com/"
    await execute_tool(session, "setCookie", {"name": "keep", "value": "me"})
    page.closed = True

    result = await execute_tool(session, "getCookies", {"urls": ["https://example.com/"]})

    assert session.page is not page
    assert [c["name"] for c in result["cookies"]] == ["keep"]


@pytest.mark.asyncio
async def test_delete_named_cookies_at_root_path(session, page):
    result = await execute_tool(session, "deleteCookies", {"names": ["a", "b"]})

    assert result == {"success": True}
    assert page.evaluations[-1] == (EXPIRE_COOKIES_JS, [
        {"name": "a", "path": "/", "domain": None},
        {"name": "b", "path": "/", "domain": None},
    ])
    assert page.context.cookie_queries == []


@pytest.mark.asyncio
async def test_delete_all_expires_each_cookie_with_its_path_and_domain(session, page):
    page.url = "https://example.com/account/settings"
    page.context.cookie_jar = [
        {"name": "sid", "value": "1", "domain": "example.com", "path": "/"},
        {"name": "pane", "value": "x", "domain": "example.com", "path": "/account"},
        {"name": "ads", "value": "y", "domain": ".example.com", "path": "/"},
        {"name": "unrelated", "value": "z", "domain": "example.com", "path": "/shop"},
    ]

    result = await execute_tool(session, "deleteCookies", {})

    assert result == {"success": True}
    assert page.context.cookie_queries[-1] == ["https://example.com/account/settings"]
    assert page.evaluations[-1] == (EXPIRE_COOKIES_JS, [
        {"name": "sid", "path": "/", "domain": "example.com"},
        {"name": "pane", "path": "/account", "domain": "example.com"},
        {"name": "ads", "path": "/", "domain": ".example.com"},
    ])


def test_expire_script_writes_cookie_path_and_domain():
    assert "path=${path}" in EXPIRE_COOKIES_JS
    assert "domain=${domain}" in EXPIRE_COOKIES_JS
    assert "path=/;" not in EXPIRE_COOKIES_JS


@pytest.mark.asyncio
async def test_delete_all_on_blank_page_touches_nothing(session, page):
    page.context.cookie_jar = [{"name": "sid", "value": "secret", "domain": "bank.test", "path": "/"}]

    result = await execute_tool(session, "deleteCookies", {})

    assert result == {"success": True}
    assert page.context.cookie_queries == []
    assert page.evaluations == []


@pytest.mark.asyncio
async def test_delete_cookies_url_scopes_lookup(session, page):
    await execute_tool(session, "deleteCookies", {"url": "https://other.test/"})
    assert page.context.cookie_queries[-1] == ["https://other.test/"]


@pytest.mark.asyncio
async def test_delete_cookies_failure(session, page):
    page.evaluate_handler = lambda expression, arg: RuntimeError(
        "Page.evaluate: SecurityError: Cookie is not allowed"
    )

    result = await execute_tool(session, "deleteCookies", {"names": ["a"]})

    assert result["success"] is False
    assert result["code"] == "SCRIPT_ERROR"


# ---------------------------------------------------------------------------
# Auth and storage
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_authenticate_installs_fetch_handler(session, page):
    result = await execute_tool(session, "authenticate", {"username": "u", "password": "p"})

    assert result == {"success": True}
    assert page.context.cdp_sessions[0].sent[0] == ("Fetch.enable", {"handleAuthRequests": True})


@pytest.mark.asyncio
async def test_authenticate_failure_reported(session, page):
    page.context.cdp_error = RuntimeError("Target closed")

    result = await execute_tool(session, "authenticate", {"username": "u", "password": "p"})

    assert result["success"] is False


@pytest.fixture
def storage(page) -> dict:
    store: dict[str, str] = {}

    def handler(expression, arg):
        if expression == SET_LOCAL_STORAGE_JS:
            key, value = arg
            store[key] = value
            return None
        if expression == GET_LOCAL_STORAGE_JS:
            return {arg: store.get(arg)} if arg else dict(store)
        raise AssertionError(f"unexpected script {expression!r}")

    page.evaluate_handler = handler
    return store


@pytest.mark.asyncio
async def test_local_storage_set_then_get(session, storage):
    assert await execute_tool(session, "setLocalStorage", {"key": "theme", "value": "dark"}) == {"success": True}
    await execute_tool(session, "setLocalStorage", {"key": "lang", "value": "en"})

    assert await execute_tool(session, "getLocalStorage", {"key": "theme"}) == {"data": {"theme": "dark"}}
    assert await execute_tool(session, "getLocalStorage", {}) == {"data": {"theme": "dark", "lang": "en"}}


@pytest.mark.asyncio
async def test_local_storage_missing_key_is_null(session, storage):
    assert await execute_tool(session, "getLocalStorage", {"key": "nope"}) == {"data": {"nope": None}}


@pytest.mark.asyncio
async def test_local_storage_error_reported(session, page):
    page.evaluate_handler = lambda expression, arg: RuntimeError(
        "Page.evaluate: SecurityError: Access is denied for this document."
    )

    result = await execute_tool(session, "getLocalStorage", {})

    assert result["data"] == {}
    assert result["code"] == "SCRIPT_ERROR"
