"""Application-wide configuration loading and validation."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized environment configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    environment: Literal["local", "dev", "prod"] = Field(default="local")
    log_level: str = Field(default="INFO")
    port: int = Field(default=5050, description="Port the HTTP/WebSocket server listens on.")

    # OpenAI credentials (shared by the realtime link and the extraction step)
    openai_api_key: str | None = Field(default=None)
    openai_base_url: str | None = Field(
        default=None, description="Optional override for the chat completion API base URL."
    )

    # Realtime speech link
    openai_realtime_url: str = Field(default="wss://api.openai.com/v1/realtime")
    realtime_model: str = Field(default="gpt-4o-realtime-preview-2024-10-01")
    realtime_voice: str = Field(default="alloy")
    realtime_temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    realtime_audio_format: str = Field(default="g711_ulaw")
    input_transcription_model: str = Field(default="whisper-1")
    session_update_delay_seconds: float = Field(
        default=0.25,
        ge=0.0,
        description="Pause between opening the realtime socket and sending session.update.",
    )

    # Post-call extraction
    extraction_model: str = Field(default="gpt-4o-2024-08-06")
    extraction_temperature: float = Field(default=0.7, ge=0.0, le=2.0)

    # Flight lookup / dispatch webhook (one URL for both requests)
    flight_webhook_url: str = Field(
        default="https://hook.eu2.make.com/bdyb29w5bt4jpcx464qidkdwr1fnwx5v",
    )
    webhook_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # Twilio call control
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL for the media stream (e.g. https://<ngrok>.ngrok-free.app).",
    )
    greeting_text: str = Field(
        default="Hi, welcome to The Aviation Factory, how may I help you today?",
    )

    @field_validator("openai_api_key")
    @classmethod
    def blank_key_is_missing(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def realtime_ws_url(self) -> str:
        return f"{self.openai_realtime_url.rstrip('/')}?model={self.realtime_model}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""

    return Settings()
