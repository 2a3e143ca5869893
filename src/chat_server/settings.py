"""Chat server configuration."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)


class ChatSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHAT_SERVER_", env_file=str(ENV_FILE), extra="ignore")

    host: str = "0.0.0.0"
    port: int = 7002

    # Agent runtime invocation.
    max_turns: int = 10
    tools_preset: str = "claude_code"
    permission_mode: str = "bypassPermissions"
    include_partial_messages: bool = True
    agent_cwd: str = Field(default_factory=os.getcwd)
    model: str | None = None
    # Unset means the turn budget is the only bound on a request.
    stream_idle_timeout_s: float | None = None

    log_level: str = "INFO"
    log_json: bool = True

    service_name: str = Field(
        default="chat-relay",
        validation_alias=AliasChoices("OTEL_SERVICE_NAME", "CHAT_SERVER_SERVICE_NAME"),
    )
    metrics_exporter: Literal["none", "console", "otlp"] = "none"
    otlp_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OTEL_EXPORTER_OTLP_METRICS_ENDPOINT", "CHAT_SERVER_OTLP_ENDPOINT"),
    )
    metrics_export_interval_ms: int = 15000
    traces_exporter: Literal["none", "console", "otlp"] = "none"
    otlp_traces_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT", "CHAT_SERVER_OTLP_TRACES_ENDPOINT"),
    )


@lru_cache(maxsize=1)
def get_settings() -> ChatSettings:
    return ChatSettings()
