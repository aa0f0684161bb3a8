#!/usr/bin/env python3
"""End-to-end smoke check for a running browser MCP server.

Expects the server on BROWSER_MCP_URL (default http://127.0.0.1:3025) with
network access to example.com. Runs every tool once, prints a report and
exits non-zero on any failure.
"""
import asyncio
import json
import os
import sys
import time
import traceback

import aiohttp

BASE = os.getenv("BROWSER_MCP_URL", "http://127.0.0.1:3025")
TIMEOUT = aiohttp.ClientTimeout(total=90)
results: list[dict] = []


def log(msg: str):
    print(f"[{time.strftime('%H:%M:%S')}] {msg}", flush=True)


async def call(session: aiohttp.ClientSession, tool: str, **parameters) -> tuple[int, dict]:
    payload = {"tool": tool, "parameters": parameters}
    async with session.post(f"{BASE}/mcp", json=payload, timeout=TIMEOUT) as resp:
        return resp.status, await resp.json()


def record(name: str, passed: bool, detail: str = ""):
    status = "PASS" if passed else "FAIL"
    results.append({"name": name, "passed": passed, "detail": detail})
    log(f"  [{status}] {name}" + (f": {detail}" if detail else ""))


# ---------------------------------------------------------------------------
# Check groups
# ---------------------------------------------------------------------------

async def check_root_and_schema(s):
    log("--- Root and schema ---")
    async with s.get(f"{BASE}/", timeout=TIMEOUT) as resp:
        body = await resp.json()
    record("root", resp.status == 200 and "running" in body.get("message", ""), json.dumps(body))

    async with s.get(f"{BASE}/schema", timeout=TIMEOUT) as resp:
        schema = await resp.json()
    names = [t["name"] for t in schema.get("tools", [])]
    record("schema", len(names) == 19, f"tools={len(names)}")


async def check_page_tools(s):
    log("--- Page tools ---")
    status, r = await call(s, "navigateTo", url="example.com")
    record("navigateTo", status == 200 and r.get("url", "").startswith("https://example.com"),
           f"title={r.get('title', '?')}, url={r.get('url', '?')}")

    status, r = await call(s, "getPageContent")
    record("getPageContent", "Example Domain" in r.get("content", ""),
           f"content_len={len(r.get('content', ''))}")

    status, r = await call(s, "getElementText", selector="h1")
    record("getElementText", r.get("text") == "Example Domain", f"text={r.get('text')!r}")

    status, r = await call(s, "waitForSelector", selector="#never-there", timeout=500)
    record("waitForSelector timeout", r.get("success") is False, f"error={r.get('error', '')[:80]}")

    status, r = await call(s, "evaluateScript", script="return document.title")
    record("evaluateScript", r.get("result") == "Example Domain", f"result={r.get('result')!r}")

    status, r = await call(s, "takeScreenshot")
    path = r.get("screenshotPath", "")
    async with s.get(f"{BASE}{path}", timeout=TIMEOUT) as resp:
        size = len(await resp.read())
    record("takeScreenshot", resp.status == 200 and size > 100, f"path={path}, bytes={size}")

    status, r = await call(s, "getPerformanceMetrics")
    metrics = r.get("metrics", {})
    record("getPerformanceMetrics", bool(metrics.get("chrome")), f"chrome_metrics={len(metrics.get('chrome', []))}")


async def check_monitoring(s):
    log("--- Console and network ---")
    status, r = await call(s, "captureConsoleLog")
    record("captureConsoleLog", r.get("success", False))
    await call(s, "evaluateScript", script="console.log('e2e-marker'); console.error('e2e-error')")
    await asyncio.sleep(0.5)
    status, r = await call(s, "getConsoleLogs")
    texts = [e.get("text") for e in r.get("logs", [])]
    record("getConsoleLogs", "e2e-marker" in texts and "e2e-error" in texts, f"logs={texts}")

    status, r = await call(s, "monitorNetwork")
    record("monitorNetwork", r.get("success", False))
    await call(s, "navigateTo", url="https://example.com/")
    status, r = await call(s, "getNetworkRequests")
    requests = r.get("requests", [])
    answered = [q for q in requests if "response" in q]
    record("getNetworkRequests", len(answered) > 0,
           f"requests={len(requests)}, answered={len(answered)}")


async def check_state(s):
    log("--- Cookies, storage, auth ---")
    status, r = await call(s, "setCookie", name="e2e", value="42")
    record("setCookie", r.get("success", False), r.get("error", ""))
    status, r = await call(s, "getCookies")
    names = [c.get("name") for c in r.get("cookies", [])]
    record("getCookies", "e2e" in names, f"names={names}")
    status, r = await call(s, "deleteCookies", names=["e2e"])
    status, r = await call(s, "getCookies")
    names = [c.get("name") for c in r.get("cookies", [])]
    record("deleteCookies", "e2e" not in names, f"names={names}")

    status, r = await call(s, "setLocalStorage", key="e2e_key", value="hello")
    record("setLocalStorage", r.get("success", False))
    status, r = await call(s, "getLocalStorage", key="e2e_key")
    record("getLocalStorage", r.get("data") == {"e2e_key": "hello"}, f"data={r.get('data')}")

    status, r = await call(s, "authenticate", username="user", password="passwd")
    record("authenticate", r.get("success", False), r.get("error", ""))


async def check_errors(s):
    log("--- Error mapping ---")
    status, r = await call(s, "flyToMoon")
    record("unknown tool -> 400", status == 400, f"error={r.get('error')}")
    status, r = await call(s, "navigateTo")
    record("missing param -> 400", status == 400, f"error={r.get('error')}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

async def main():
    log("=" * 60)
    log("browser-mcp E2E check")
    log("=" * 60)

    async with aiohttp.ClientSession() as s:
        try:
            await check_root_and_schema(s)
            await check_page_tools(s)
            await check_monitoring(s)
            await check_state(s)
            await check_errors(s)
        except Exception as e:
            log(f"FATAL: {e}")
            traceback.print_exc()
            record("run", False, str(e))

    log("")
    log("=" * 60)
    log("RESULTS")
    log("=" * 60)
    passed = sum(1 for r in results if r["passed"])
    failed = sum(1 for r in results if not r["passed"])
    for r in results:
        status = "PASS" if r["passed"] else "FAIL"
        print(f"  [{status}] {r['name']}: {r['detail']}")
    log(f"\nTotal: {passed} passed, {failed} failed, {len(results)} total")
    return 0 if failed == 0 else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
