#!/usr/bin/env python3
"""
HTTP server for the browser MCP tools.

Keeps one browser session alive between requests and exposes:
    GET  /         liveness message
    GET  /schema   tool descriptor document
    POST /mcp      {"tool": "<name>", "parameters": {...}}
    GET  /<file>   screenshots saved by takeScreenshot

Usage:
    python -m browser_mcp [--host 127.0.0.1] [--port 3025] [--headless]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from http import HTTPStatus

from aiohttp import web
from pydantic import ValidationError

from .actions import execute_tool
from .browser_engine import BrowserSession
from .config import Config
from .errors import ToolError
from .models import ToolRequest
from .schema import build_schema

log = logging.getLogger(__name__)

SESSION_KEY = web.AppKey("session", BrowserSession)
WARMUP_KEY = web.AppKey("warmup_task", asyncio.Task)

CORS_ALLOW_METHODS = "GET,HEAD,PUT,PATCH,POST,DELETE"


# ---------------------------------------------------------------------------
# CORS middleware
# ---------------------------------------------------------------------------

@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Allow any origin. Preflight requests are answered without routing."""
    if request.method == "OPTIONS":
        response = web.Response(status=HTTPStatus.NO_CONTENT)
        response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        requested = request.headers.get("Access-Control-Request-Headers")
        if requested:
            response.headers["Access-Control-Allow-Headers"] = requested
    else:
        response = await handler(request)
    response.headers["Access-Control-Allow-Origin"] = "*"
    return response


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


async def handle_root(request: web.Request) -> web.Response:
    """Liveness check."""
    session = request.app[SESSION_KEY]
    return web.json_response({
        "message": "Browser MCP server is running",
        "session": session.info(),
    })


async def handle_schema(request: web.Request) -> web.Response:
    return web.json_response(build_schema())


async def handle_mcp(request: web.Request) -> web.Response:
    """Dispatch one tool call."""
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        return _error(f"Invalid JSON: {e}", HTTPStatus.BAD_REQUEST)
    except Exception as e:
        # Catches aiohttp ContentTypeError and other unexpected parse errors
        return _error(f"Request parse error: {e}", HTTPStatus.BAD_REQUEST)

    try:
        call = ToolRequest.model_validate(body)
    except ValidationError as e:
        return _error(f"Invalid request: {e.errors()[0].get('msg', 'malformed body')}", HTTPStatus.BAD_REQUEST)

    session = request.app[SESSION_KEY]
    try:
        result = await execute_tool(session, call.tool, call.parameters)
    except ToolError as e:
        if e.status >= HTTPStatus.INTERNAL_SERVER_ERROR:
            log.error("Tool %s failed: %s", call.tool, e)
        else:
            log.info("Rejected call to %s: %s", call.tool, e)
        return _error(str(e), e.status)
    except Exception as e:
        log.exception("Error running tool %s", call.tool)
        return _error(str(e) or type(e).__name__, HTTPStatus.INTERNAL_SERVER_ERROR)

    return web.json_response(result, dumps=lambda obj: json.dumps(obj, default=str))


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def _warm_up(app: web.Application) -> None:
    """Launch the browser ahead of the first request. Failure is not fatal."""
    try:
        await app[SESSION_KEY].ensure()
        log.info("Browser initialized successfully")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        log.error("Failed to initialize browser: %s", e)


async def on_startup(app: web.Application) -> None:
    app[WARMUP_KEY] = asyncio.create_task(_warm_up(app))


async def cleanup(app: web.Application) -> None:
    """Close the browser on shutdown."""
    task = app.get(WARMUP_KEY)
    if task is not None and not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await app[SESSION_KEY].close()


def create_app(
    session: BrowserSession | None = None,
    *,
    launch_on_startup: bool | None = None,
) -> web.Application:
    """Build the aiohttp application around one BrowserSession."""
    Config.ensure_dirs()

    app = web.Application(middlewares=[cors_middleware])
    app[SESSION_KEY] = session or BrowserSession()

    app.router.add_get("/", handle_root)
    app.router.add_get("/schema", handle_schema)
    app.router.add_post("/mcp", handle_mcp)
    # Registered last so the routes above take precedence
    app.router.add_static("/", Config.SCREENSHOT_DIR)

    if launch_on_startup is None:
        launch_on_startup = Config.LAUNCH_ON_STARTUP
    if launch_on_startup:
        app.on_startup.append(on_startup)
    app.on_cleanup.append(cleanup)
    return app


def main():
    parser = argparse.ArgumentParser(description="browser MCP HTTP server")
    parser.add_argument("--port", type=int, default=Config.DEFAULT_PORT,
                        help=f"Port (default: {Config.DEFAULT_PORT})")
    parser.add_argument("--host", default=Config.DEFAULT_HOST,
                        help=f"Host (default: {Config.DEFAULT_HOST})")
    parser.add_argument("--headless", action="store_true", default=Config.HEADLESS,
                        help="Launch the browser headless")
    args = parser.parse_args()

    logging.basicConfig(
        stream=sys.stderr,
        level=Config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    Config.HEADLESS = args.headless

    app = create_app()
    log.info("Browser MCP server running on http://%s:%d", args.host, args.port)
    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
