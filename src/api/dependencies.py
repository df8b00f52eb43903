"""Shared FastAPI dependencies.

Each call-independent collaborator is built once per process and injected, so
tests can swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache

from agents.extraction import BookingExtractor
from agents.media_relay import SpeechLinkFactory
from agents.pipeline import TranscriptPipeline
from integrations.flight_webhook import FlightWebhookClient
from integrations.openai_realtime import RealtimeSpeechLink
from integrations.twilio_streaming import SessionStore


@lru_cache(maxsize=1)
def get_session_store() -> SessionStore:
    return SessionStore()


@lru_cache(maxsize=1)
def get_transcript_pipeline() -> TranscriptPipeline:
    # Lazy import so the OpenAI SDK client is only built when a call ends.
    from llm.openai_client import OpenAIClient

    return TranscriptPipeline(BookingExtractor(OpenAIClient()), FlightWebhookClient())


def get_speech_link_factory() -> SpeechLinkFactory:
    return RealtimeSpeechLink


async def drain_pipeline() -> None:
    """Let in-flight post-call work finish, if any pipeline was ever built."""

    if get_transcript_pipeline.cache_info().currsize:
        await get_transcript_pipeline().drain()
