"""Stream translation from agent runtime messages to server-sent events.

Each runtime event maps to zero or more wire events, emitted in the order the
runtime produced them. The translator also keeps the per-request counters and
flushes them to telemetry when the runtime reports a terminal result.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from typing import Any

from opentelemetry.trace import Span, Status, StatusCode

from .errors import QUERY_FAILED_MESSAGE, STREAM_ERROR_MESSAGE, StreamProcessingError
from .runtime import normalize_message
from .state import (
    AssistantTurn,
    DoneEvent,
    ErrorEvent,
    QueryResult,
    RequestMetrics,
    RuntimeEvent,
    TextDelta,
    TextDeltaEvent,
    ToolProgress,
    ToolProgressEvent,
    ToolStartEvent,
    WireEvent,
)
from .telemetry import Telemetry

DONE_FRAME = "data: [DONE]\n\n"


def encode_event(event: WireEvent) -> str:
    return f"data: {event.model_dump_json()}\n\n"


class StreamTranslator:
    def __init__(
        self,
        telemetry: Telemetry,
        metrics: RequestMetrics,
        normalize: Callable[[Any], RuntimeEvent | None] = normalize_message,
        idle_timeout_s: float | None = None,
        span: Span | None = None,
    ) -> None:
        self._telemetry = telemetry
        self.metrics = metrics
        self._normalize = normalize
        self._idle_timeout_s = idle_timeout_s
        # Request span opened by the handler; ended here once the stream finishes.
        self._span = span

    def handle(self, event: RuntimeEvent | None) -> list[WireEvent]:
        """Apply one runtime event to the counters and return its wire events."""
        if isinstance(event, TextDelta):
            self.metrics.text_chunks += 1
            return [TextDeltaEvent(text=event.text)]
        if isinstance(event, AssistantTurn):
            return [self._tool_started(name) for name in event.tool_names]
        if isinstance(event, ToolProgress):
            return [ToolProgressEvent(tool=event.tool, elapsed=event.elapsed)]
        if isinstance(event, QueryResult):
            return [self._completed()] if event.ok else [self._failed(event.subtype)]
        return []

    async def stream(self, messages: AsyncIterator[Any]) -> AsyncIterator[str]:
        """Yield encoded frames; always ends with the ``[DONE]`` sentinel.

        ``messages`` is closed when the stream ends for any reason, including
        the caller abandoning the response mid-stream.
        """
        try:
            async with aclosing(messages), aclosing(self._iterate(messages)) as events:
                try:
                    async for message in events:
                        for wire_event in self.handle(self._normalize(message)):
                            yield encode_event(wire_event)
                except Exception as exc:  # noqa: BLE001
                    self._telemetry.error(
                        "stream_processing_error",
                        exc_info=True,
                        error=str(exc) or type(exc).__name__,
                        tools_used=self.metrics.tools_used,
                        text_chunks=self.metrics.text_chunks,
                    )
                    self._telemetry.count("chat.stream.error", tags={"error_type": "stream_processing"})
                    self._mark_span_failed("stream_processing", exc)
                    yield encode_event(ErrorEvent(message=STREAM_ERROR_MESSAGE))
            yield DONE_FRAME
        finally:
            if self._span is not None:
                self._span.set_attribute("chat.tools_used", self.metrics.tools_used)
                self._span.set_attribute("chat.text_chunks", self.metrics.text_chunks)
                self._span.end()

    def _mark_span_failed(self, error_type: str, exc: Exception | None = None) -> None:
        if self._span is None:
            return
        self._span.set_attribute("chat.error_type", error_type)
        if exc is not None:
            self._span.record_exception(exc)
        self._span.set_status(Status(StatusCode.ERROR, error_type))

    async def _iterate(self, messages: AsyncIterator[Any]) -> AsyncIterator[Any]:
        if self._idle_timeout_s is None:
            async for message in messages:
                yield message
            return

        iterator = messages.__aiter__()
        while True:
            try:
                message = await asyncio.wait_for(iterator.__anext__(), timeout=self._idle_timeout_s)
            except StopAsyncIteration:
                return
            except asyncio.TimeoutError as exc:
                raise StreamProcessingError(
                    f"no agent event within {self._idle_timeout_s}s"
                ) from exc
            yield message

    def _tool_started(self, name: str) -> ToolStartEvent:
        self.metrics.tools_used += 1
        self._telemetry.info("tool_invoked", tool=name)
        self._telemetry.count("chat.tool.invocation", tags={"tool_name": name})
        return ToolStartEvent(tool=name)

    def _completed(self) -> DoneEvent:
        now = time.perf_counter()
        total_ms = self.metrics.total_duration_ms(now)
        stream_ms = self.metrics.stream_duration_ms(now)
        self._telemetry.info(
            "chat_request_completed",
            total_duration_ms=total_ms,
            stream_duration_ms=stream_ms,
            tools_used=self.metrics.tools_used,
            text_chunks=self.metrics.text_chunks,
        )
        self._telemetry.count("chat.api.success")
        self._telemetry.distribution("chat.api.duration", total_ms, unit="ms", tags={"status": "success"})
        self._telemetry.distribution("chat.stream.chunks", self.metrics.text_chunks)
        self._telemetry.distribution("chat.tools.count", self.metrics.tools_used)
        return DoneEvent()

    def _failed(self, subtype: str) -> ErrorEvent:
        self._telemetry.error("chat_query_incomplete", subtype=subtype)
        self._telemetry.count("chat.api.failure", tags={"subtype": subtype})
        self._mark_span_failed(subtype)
        return ErrorEvent(message=QUERY_FAILED_MESSAGE)
