"""Per-call relay between a Twilio media stream and the OpenAI Realtime API."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

from agents.pipeline import TranscriptPipeline
from integrations.openai_realtime import RealtimeSpeechLink, TelephonySender
from integrations.twilio_streaming import (
    CallSession,
    MediaEvent,
    OtherTwilioEvent,
    SessionStore,
    StartEvent,
    StopEvent,
    parse_twilio_ws_message,
)

LOGGER = logging.getLogger(__name__)

SpeechLinkFactory = Callable[[CallSession, TelephonySender], RealtimeSpeechLink]


class RelayState(str, Enum):
    INIT = "init"
    STREAMING = "streaming"
    CLOSING = "closing"
    CLOSED = "closed"


def resolve_call_id(websocket: WebSocket) -> str:
    call_id = websocket.query_params.get("callSid") or websocket.headers.get("x-twilio-call-sid")
    if call_id and call_id.strip():
        return call_id.strip()
    return f"session_{time.time_ns()}"


class MediaStreamRelay:
    """Binds one Twilio media stream to one realtime speech link.

    The telephony receive loop runs in the endpoint coroutine while the speech
    link consumes its own socket in a separate task. The two only meet through
    the shared :class:`CallSession` and the explicit forwarding calls.
    """

    def __init__(
        self,
        websocket: WebSocket,
        store: SessionStore,
        pipeline: TranscriptPipeline,
        link_factory: SpeechLinkFactory,
    ) -> None:
        self._ws = websocket
        self._store = store
        self._pipeline = pipeline
        self._link_factory = link_factory
        self._state = RelayState.INIT
        self._call_id: str | None = None
        self._session: CallSession | None = None
        self._link: RealtimeSpeechLink | None = None
        self._link_task: asyncio.Task[None] | None = None
        self._handlers: dict[type, Callable[[Any], Awaitable[None]]] = {
            StartEvent: self._on_start,
            MediaEvent: self._on_media,
            StopEvent: self._on_stop,
            OtherTwilioEvent: self._on_other,
        }

    @property
    def state(self) -> RelayState:
        return self._state

    @property
    def call_id(self) -> str | None:
        return self._call_id

    async def run(self) -> None:
        await self._ws.accept()
        self._call_id = resolve_call_id(self._ws)
        LOGGER.info("Client connected (call %s)", self._call_id)

        try:
            self._session = await self._store.get_or_create(self._call_id)
            self._link = self._link_factory(self._session, self._send_to_telephony)
            if await self._link.connect():
                self._link_task = asyncio.create_task(self._link.run(), name=f"realtime-link:{self._call_id}")
            async for message in self._ws.iter_text():
                await self.handle_message(message)
        finally:
            await self._shutdown()

    async def handle_message(self, message: str) -> None:
        try:
            event = parse_twilio_ws_message(message)
        except ValueError as exc:
            LOGGER.error("Error parsing message: %s. Message: %.200r", exc, message)
            return
        await self._handlers[type(event)](event)

    async def _on_start(self, event: StartEvent) -> None:
        if self._session is None:
            return
        self._session.assign_stream_sid(event.stream_sid)
        if self._state is RelayState.INIT:
            self._state = RelayState.STREAMING
        LOGGER.info("Incoming stream has started %s (call %s)", self._session.stream_sid, self._call_id)

    async def _on_media(self, event: MediaEvent) -> None:
        if self._link is not None and self._link.is_open:
            await self._link.send_audio(event.payload)

    async def _on_stop(self, event: StopEvent) -> None:
        LOGGER.info("Stream stopped (call %s)", self._call_id)

    async def _on_other(self, event: OtherTwilioEvent) -> None:
        LOGGER.info("Received non-media event: %s", event.event)

    async def _send_to_telephony(self, frame: dict[str, Any]) -> None:
        if self._state in (RelayState.CLOSING, RelayState.CLOSED):
            return
        try:
            await self._ws.send_json(frame)
        except (WebSocketDisconnect, RuntimeError) as exc:
            LOGGER.debug("Could not forward audio to call %s: %s", self._call_id, exc)

    async def _shutdown(self) -> None:
        if self._state in (RelayState.CLOSING, RelayState.CLOSED):
            return
        self._state = RelayState.CLOSING
        LOGGER.info("Client disconnected (call %s)", self._call_id)

        try:
            if self._link is not None:
                await self._link.close()
            if self._link_task is not None:
                self._link_task.cancel()
                (outcome,) = await asyncio.gather(self._link_task, return_exceptions=True)
                if isinstance(outcome, BaseException) and not isinstance(outcome, asyncio.CancelledError):
                    LOGGER.error("Speech link failed (call %s)", self._call_id, exc_info=outcome)
        finally:
            # Hand-off runs even when the handler itself is being cancelled.
            if self._session is not None and self._call_id is not None:
                transcript = self._session.snapshot()
                LOGGER.info("Full transcript (call %s):\n%s", self._call_id, transcript)
                self._pipeline.spawn(self._call_id, transcript)
                await self._store.remove(self._call_id)
            self._state = RelayState.CLOSED
