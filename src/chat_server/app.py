"""FastAPI entry for the chat relay server."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse
from opentelemetry.trace import Status, StatusCode

from .errors import GENERIC_API_ERROR, InvalidInput
from .executor import start_chat_stream, validate_payload
from .logging import configure_logging, get_logger
from .runtime import AgentSource, sdk_agent_source
from .settings import ChatSettings, get_settings
from .telemetry import Telemetry, get_telemetry, init_telemetry, shutdown_telemetry

CHAT_ENDPOINT = "/api/chat"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

logger = get_logger("app")


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_json)
    init_telemetry(settings)
    logger.info(
        "chat_server_config",
        extra={
            "extra": {
                "max_turns": settings.max_turns,
                "tools_preset": settings.tools_preset,
                "permission_mode": settings.permission_mode,
                "agent_cwd": settings.agent_cwd,
                "model": settings.model,
                "stream_idle_timeout_s": settings.stream_idle_timeout_s,
                "metrics_exporter": settings.metrics_exporter,
                "traces_exporter": settings.traces_exporter,
            }
        },
    )
    yield
    shutdown_telemetry()


app = FastAPI(title="Chat Relay Server", version="0.1.0", lifespan=lifespan)


def get_agent_source(settings: ChatSettings = Depends(get_settings)) -> AgentSource:
    return sdk_agent_source(settings)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post(CHAT_ENDPOINT)
async def chat(
    request: Request,
    settings: ChatSettings = Depends(get_settings),
    telemetry: Telemetry = Depends(get_telemetry),
    source: AgentSource = Depends(get_agent_source),
):
    request_start = time.perf_counter()
    span = telemetry.start_span("chat.request", {"http.route": CHAT_ENDPOINT})
    try:
        body: Any = await request.json()
        messages = body.get("messages") if isinstance(body, dict) else None
        message_count = len(messages) if isinstance(messages, list) else 0
        telemetry.count("chat.api.request", tags={"endpoint": CHAT_ENDPOINT})
        telemetry.info("chat_request_received", message_count=message_count)
        span.set_attribute("chat.message_count", message_count)

        try:
            validated = validate_payload(body)
        except InvalidInput as exc:
            telemetry.warning("chat_request_invalid", error_type=exc.kind, reason=exc.message)
            telemetry.count("chat.api.error", tags={"error_type": exc.kind})
            span.set_attribute("chat.error_type", exc.kind)
            span.end()
            return JSONResponse({"error": exc.message}, status_code=exc.status_code)

        frames = start_chat_stream(
            validated,
            source=source,
            settings=settings,
            telemetry=telemetry,
            request_start=request_start,
            span=span,
        )
        return StreamingResponse(frames, media_type="text/event-stream", headers=SSE_HEADERS)
    except Exception as exc:  # noqa: BLE001
        telemetry.error("chat_api_error", exc_info=True, error=str(exc) or type(exc).__name__)
        telemetry.count("chat.api.error", tags={"error_type": "api_error"})
        total_ms = (time.perf_counter() - request_start) * 1000
        telemetry.distribution("chat.api.duration", total_ms, unit="ms", tags={"status": "error"})
        span.set_attribute("chat.error_type", "api_error")
        span.record_exception(exc)
        span.set_status(Status(StatusCode.ERROR, "api_error"))
        span.end()
        return JSONResponse({"error": GENERIC_API_ERROR}, status_code=500)
