"""
Slack slash-command server.

Routes:
- GET  /health: process status
- POST <server.command_path>: slash command, answered at once, result posted
  later to the command's response_url
- GET  /test: synchronous lookup for today, for diagnostics only

Usage:
    wa-relay-server
    uvicorn chatrelay.connectors.slack.server:create_app --factory --port 3000
"""

import sys
from contextlib import asynccontextmanager
from datetime import datetime, UTC
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatrelay.connectors.slack import commands, notify
from chatrelay.connectors.slack.commands import Deliver, Runner
from chatrelay.connectors.whatsapp._playwright_setup import ensure_chromium_installed
from chatrelay.jobs.relay import build_request, make_runner
from chatrelay.utils.cfg import engine
from chatrelay.utils.cfg.schema import Config
from chatrelay.utils.dates.normalize import to_display_label
from chatrelay.utils.errors import ConfigError, Unauthorized, describe_error
from chatrelay.utils.logs import report

logger = report.settings(__file__)

SERVICE = "WhatsApp Slack Bot Server"


async def _read_fields(request: Request) -> Dict[str, Any]:
    """Slack posts urlencoded forms; JSON is accepted for manual testing."""
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Malformed JSON body") from exc
        return body if isinstance(body, dict) else {}
    form = await request.form()
    return dict(form)


def create_app(cfg: Optional[Config] = None, runner: Optional[Runner] = None,
               deliver: Deliver = notify.deliver) -> FastAPI:
    """Build the app. `runner`/`deliver` default to the browser lookup and HTTP POST."""
    cfg = engine.validate(cfg or engine.load())
    report.configure(cfg.runtime.debug)
    runner = runner or make_runner(cfg.whatsapp)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        port = cfg.server.port
        print(f"🚀 Slack server running on port {port}")
        print(f"📡 Slash command endpoint: http://localhost:{port}{cfg.server.command_path}")
        print(f"🏥 Health check: http://localhost:{port}/health")
        print(f"🧪 Test endpoint: http://localhost:{port}/test")
        if not cfg.slack.verification_token:
            print("⚠️  SLACK_VERIFICATION_TOKEN not set - slash commands will work without verification")
        yield
        logger.info("Server shutting down")
        await commands.drain_tasks(timeout_s=30.0)

    app = FastAPI(title="chatrelay", version="1.0.0", lifespan=lifespan)
    app.state.cfg = cfg

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        client = request.client.host if request.client else "-"
        logger.info("%s %s - %s", request.method, request.url.path, client)
        return await call_next(request)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code == 404:
            return JSONResponse({"error": "Endpoint not found"}, status_code=404)
        return JSONResponse({"error": str(exc.detail)}, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Server error on %s: %s", request.url.path, describe_error(exc), exc_info=exc)
        return JSONResponse({"error": "Internal Server Error"}, status_code=500)

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {
            "status": "OK",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": SERVICE,
            "active_lookups": commands.active_task_count(),
        }

    @app.post(cfg.server.command_path)
    async def slash_command(request: Request) -> JSONResponse:
        fields = await _read_fields(request)
        try:
            ack = commands.accept_command(fields, cfg, runner, deliver)
        except Unauthorized:
            return JSONResponse({"error": "Unauthorized"}, status_code=401)
        return JSONResponse(ack)

    @app.get("/test")
    async def test_run() -> JSONResponse:
        search = build_request(cfg)
        try:
            messages = await runner(search)
        except Exception as exc:  # diagnostic endpoint reports every failure
            logger.error("Test run failed: %s", describe_error(exc))
            return JSONResponse({"success": False, "error": describe_error(exc)}, status_code=500)
        return JSONResponse({
            "success": True,
            "date": to_display_label(search.target_date, search.locale),
            "messagesFound": len(messages),
            "messages": [m.to_dict() for m in messages],
        })

    return app


def main() -> None:
    """Entry point for `wa-relay-server`."""
    import uvicorn

    try:
        cfg = engine.load()
        app = create_app(cfg)
    except ConfigError as exc:
        print(f"❌ {describe_error(exc)}")
        sys.exit(2)
    ensure_chromium_installed(cfg.whatsapp.executable_path)
    uvicorn.run(app, host=cfg.server.host, port=cfg.server.port)


if __name__ == "__main__":
    main()
