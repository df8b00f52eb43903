"""OpenAI Realtime API link for a single phone call."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from config.settings import Settings, get_settings
from integrations.twilio_streaming import CallSession, build_media_frame
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)

AGENT_MESSAGE_NOT_FOUND = "Agent message not found"

# Event types that are logged verbosely when received.
LOG_EVENT_TYPES = frozenset(
    {
        "response.content.done",
        "rate_limits.updated",
        "response.done",
        "input_audio_buffer.committed",
        "input_audio_buffer.speech_stopped",
        "input_audio_buffer.speech_started",
        "session.created",
        "response.text.done",
        "conversation.item.input_audio_transcription.completed",
    }
)

TelephonySender = Callable[[dict[str, Any]], Awaitable[None]]


class RealtimeEvent(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str


class InputTranscriptionCompleted(RealtimeEvent):
    type: Literal["conversation.item.input_audio_transcription.completed"]
    transcript: str


class ContentPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    transcript: str | None = None


class OutputItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    content: list[ContentPart] = Field(default_factory=list)


class ResponseBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    output: list[OutputItem] = Field(default_factory=list)


class ResponseDone(RealtimeEvent):
    type: Literal["response.done"]
    response: ResponseBody = Field(default_factory=ResponseBody)

    def agent_transcript(self) -> str | None:
        for item in self.response.output:
            for part in item.content:
                if part.transcript:
                    return part.transcript
        return None


class AudioDelta(RealtimeEvent):
    type: Literal["response.audio.delta"]
    delta: str = ""


class SessionUpdated(RealtimeEvent):
    type: Literal["session.updated"]


class RealtimeErrorEvent(RealtimeEvent):
    type: Literal["error"]
    error: dict[str, Any] = Field(default_factory=dict)


class UnhandledRealtimeEvent(RealtimeEvent):
    """Any event type this link does not act on."""


REALTIME_EVENT_MODELS: dict[str, type[RealtimeEvent]] = {
    "conversation.item.input_audio_transcription.completed": InputTranscriptionCompleted,
    "response.done": ResponseDone,
    "response.audio.delta": AudioDelta,
    "session.updated": SessionUpdated,
    "error": RealtimeErrorEvent,
}


def parse_realtime_event(raw: str | bytes) -> RealtimeEvent:
    """Decode a server event; raises ``ValueError`` on malformed input."""

    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Realtime event is not a JSON object")
    model = REALTIME_EVENT_MODELS.get(str(data.get("type") or ""), UnhandledRealtimeEvent)
    return model.model_validate(data)


class RealtimeSpeechLink:
    """Owns the realtime socket for one call.

    Audio from the caller goes in through :meth:`send_audio`; synthesized audio
    comes back as ``response.audio.delta`` events and is handed to
    ``send_to_telephony`` as ready-to-send Media Streams frames. Transcribed
    turns are appended to the call session in the order they arrive.
    """

    def __init__(
        self,
        session: CallSession,
        send_to_telephony: TelephonySender,
        *,
        settings: Settings | None = None,
        connector: Callable[..., Awaitable[Any]] | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._session = session
        self._send_to_telephony = send_to_telephony
        self._connector = connector or connect
        self._ws: Any = None
        self._closed = False
        self._dropped_frames = 0
        self._handlers: dict[type[RealtimeEvent], Callable[[Any], Awaitable[None]]] = {
            InputTranscriptionCompleted: self._on_user_transcript,
            ResponseDone: self._on_response_done,
            AudioDelta: self._on_audio_delta,
            SessionUpdated: self._on_session_updated,
            RealtimeErrorEvent: self._on_error,
        }

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._closed and self._ws.state is State.OPEN

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    async def connect(self) -> bool:
        if self._closed or self._ws is not None:
            return self.is_open

        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "OpenAI-Beta": "realtime=v1",
        }
        try:
            self._ws = await self._connector(self._settings.realtime_ws_url, additional_headers=headers)
        except (OSError, WebSocketException, asyncio.TimeoutError):
            LOGGER.exception("Failed to connect to the OpenAI Realtime API (call %s)", self._session.call_id)
            return False

        LOGGER.info("Connected to the OpenAI Realtime API (call %s)", self._session.call_id)
        return True

    def session_update(self) -> dict[str, Any]:
        settings = self._settings
        return {
            "type": "session.update",
            "session": {
                "turn_detection": {"type": "server_vad"},
                "input_audio_format": settings.realtime_audio_format,
                "output_audio_format": settings.realtime_audio_format,
                "voice": settings.realtime_voice,
                "instructions": load_prompt("assistant_system.txt"),
                "modalities": ["text", "audio"],
                "temperature": settings.realtime_temperature,
                "input_audio_transcription": {"model": settings.input_transcription_model},
            },
        }

    async def run(self) -> None:
        """Configure the remote session, then consume events until the socket closes."""

        if self._ws is None:
            return

        try:
            # Give the remote session a moment to initialize.
            await asyncio.sleep(self._settings.session_update_delay_seconds)
            update = self.session_update()
            LOGGER.debug("Sending session update: %s", json.dumps(update))
            await self._send_json(update)

            async for message in self._ws:
                await self.handle_message(message)
        except ConnectionClosed as exc:
            LOGGER.warning("Realtime link for call %s closed unexpectedly: %s", self._session.call_id, exc)
        except (OSError, WebSocketException):
            LOGGER.exception("Error in the OpenAI WebSocket (call %s)", self._session.call_id)
        else:
            LOGGER.info("Disconnected from the OpenAI Realtime API (call %s)", self._session.call_id)

    async def handle_message(self, raw: str | bytes) -> None:
        try:
            event = parse_realtime_event(raw)
        except ValueError as exc:
            LOGGER.error("Error processing OpenAI message: %s. Raw message: %.200r", exc, raw)
            return

        if event.type in LOG_EVENT_TYPES:
            LOGGER.debug("Received event: %s %s", event.type, event.model_dump())

        handler = self._handlers.get(type(event))
        if handler is not None:
            await handler(event)

    async def send_audio(self, payload_b64: str) -> None:
        """Append caller audio to the input buffer; dropped while not open."""

        if not self.is_open:
            return
        await self._send_json({"type": "input_audio_buffer.append", "audio": payload_b64})

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._ws is None:
            return
        try:
            await self._ws.close()
        except (OSError, WebSocketException):
            LOGGER.debug("Realtime socket for call %s already gone", self._session.call_id)

    async def _send_json(self, message: dict[str, Any]) -> None:
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed:
            LOGGER.debug("Dropping %s; realtime socket closed", message.get("type"))

    async def _on_user_transcript(self, event: InputTranscriptionCompleted) -> None:
        text = event.transcript.strip()
        self._session.append_user(text)
        LOGGER.info("User (%s): %s", self._session.call_id, text)

    async def _on_response_done(self, event: ResponseDone) -> None:
        text = event.agent_transcript() or AGENT_MESSAGE_NOT_FOUND
        self._session.append_agent(text)
        LOGGER.info("Agent (%s): %s", self._session.call_id, text)

    async def _on_audio_delta(self, event: AudioDelta) -> None:
        if not event.delta:
            return
        stream_sid = self._session.stream_sid
        if stream_sid is None:
            # Frames cannot be addressed before the start event.
            self._dropped_frames += 1
            if self._dropped_frames == 1:
                LOGGER.warning("Dropping audio for call %s until the stream starts", self._session.call_id)
            return
        await self._send_to_telephony(build_media_frame(stream_sid, event.delta))

    async def _on_session_updated(self, event: SessionUpdated) -> None:
        LOGGER.info("Session updated successfully (call %s)", self._session.call_id)

    async def _on_error(self, event: RealtimeErrorEvent) -> None:
        LOGGER.error("Realtime API error (call %s): %s", self._session.call_id, event.error)
