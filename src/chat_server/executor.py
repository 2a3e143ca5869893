"""Protocol adapter for incoming chat requests.

Keep this layer thin: validate the body, compose the prompt, open the agent
stream and hand it to the translator.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from opentelemetry.trace import Span
from pydantic import ValidationError

from .errors import MISSING_OR_MALFORMED_MESSAGES, NO_USER_MESSAGE, InvalidInput
from .prompts import compose_prompt
from .runtime import AgentSource
from .settings import ChatSettings
from .state import ChatTurn, RequestMetrics
from .stream import StreamTranslator
from .telemetry import Telemetry


@dataclass(frozen=True)
class ValidatedRequest:
    turns: tuple[ChatTurn, ...]
    active: ChatTurn


def validate_payload(body: Any) -> ValidatedRequest:
    messages = body.get("messages") if isinstance(body, dict) else None
    if not isinstance(messages, list) or not messages:
        raise InvalidInput(MISSING_OR_MALFORMED_MESSAGES, "Messages array is required")
    try:
        turns = tuple(ChatTurn.model_validate(item) for item in messages)
    except ValidationError as exc:
        raise InvalidInput(
            MISSING_OR_MALFORMED_MESSAGES,
            "Each message needs a role of 'user' or 'assistant' and string content",
        ) from exc

    user_turns = [turn for turn in turns if turn.role == "user"]
    if not user_turns:
        raise InvalidInput(NO_USER_MESSAGE, "No user message found")
    return ValidatedRequest(turns=turns, active=user_turns[-1])


def start_chat_stream(
    request: ValidatedRequest,
    *,
    source: AgentSource,
    settings: ChatSettings,
    telemetry: Telemetry,
    request_start: float,
    span: Span | None = None,
) -> AsyncIterator[str]:
    """Open the agent stream; once this returns, the translator owns ``span``."""
    active_length = len(request.active.content)
    telemetry.distribution("chat.message.length", active_length, tags={"type": "user_message"})
    telemetry.info(
        "chat_request_processing",
        conversation_length=len(request.turns),
        last_message_length=active_length,
    )
    prompt = compose_prompt(request.turns, request.active)

    telemetry.info("agent_query_starting", max_turns=settings.max_turns)
    messages = source(prompt)
    translator = StreamTranslator(
        telemetry,
        RequestMetrics(request_start=request_start),
        idle_timeout_s=settings.stream_idle_timeout_s,
        span=span,
    )
    return translator.stream(messages)
