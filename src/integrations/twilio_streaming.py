"""Twilio Media Streams wire format and per-call session state."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

LOGGER = logging.getLogger(__name__)

USER_LABEL = "User"
AGENT_LABEL = "Agent"


@dataclass(frozen=True, slots=True)
class StartEvent:
    stream_sid: str
    call_sid: str | None = None
    custom_parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MediaEvent:
    payload: str
    track: str | None = None


@dataclass(frozen=True, slots=True)
class StopEvent:
    stream_sid: str | None = None


@dataclass(frozen=True, slots=True)
class OtherTwilioEvent:
    event: str


TwilioEvent = Union[StartEvent, MediaEvent, StopEvent, OtherTwilioEvent]


def _object_field(container: dict[str, Any], key: str) -> dict[str, Any]:
    value = container.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be a JSON object")
    return value


def parse_twilio_ws_message(text: str | bytes) -> TwilioEvent:
    """Decode one Media Streams frame.

    Raises ``ValueError`` for frames that are not JSON objects or that are
    missing the fields required by their ``event`` kind.
    """

    message = json.loads(text)
    if not isinstance(message, dict):
        raise ValueError("Media stream frame is not a JSON object")

    event = str(message.get("event") or "")
    if event == "start":
        start = _object_field(message, "start")
        stream_sid = start.get("streamSid") or message.get("streamSid")
        if not isinstance(stream_sid, str) or not stream_sid:
            raise ValueError("start event without streamSid")
        params = _object_field(start, "customParameters")
        call_sid = start.get("callSid")
        return StartEvent(
            stream_sid=stream_sid,
            call_sid=call_sid if isinstance(call_sid, str) else None,
            custom_parameters={str(k): str(v) for k, v in params.items()},
        )
    if event == "media":
        media = _object_field(message, "media")
        payload = media.get("payload")
        if not isinstance(payload, str):
            raise ValueError("media event without payload")
        track = media.get("track")
        return MediaEvent(payload=payload, track=track if isinstance(track, str) else None)
    if event == "stop":
        return StopEvent(stream_sid=message.get("streamSid"))
    return OtherTwilioEvent(event=event)


def build_media_frame(stream_sid: str, payload_b64: str) -> dict[str, Any]:
    """Outbound frame that plays ``payload_b64`` (mu-law, base64) on the call."""

    return {
        "event": "media",
        "streamSid": stream_sid,
        "media": {"payload": payload_b64},
    }


@dataclass
class CallSession:
    """State for one live call, shared by the relay and its speech link."""

    call_id: str
    lines: list[str] = field(default_factory=list)
    stream_sid: str | None = None

    def append_user(self, text: str) -> None:
        self._append(USER_LABEL, text)

    def append_agent(self, text: str) -> None:
        self._append(AGENT_LABEL, text)

    def _append(self, label: str, text: str) -> None:
        self.lines.append(f"{label}: {text}\n")

    def assign_stream_sid(self, stream_sid: str) -> bool:
        """Set the outbound stream address; the first assignment wins."""

        if self.stream_sid is not None:
            if self.stream_sid != stream_sid:
                LOGGER.warning(
                    "Ignoring streamSid %s for call %s; already bound to %s",
                    stream_sid,
                    self.call_id,
                    self.stream_sid,
                )
            return False
        self.stream_sid = stream_sid
        return True

    @property
    def transcript(self) -> str:
        return "".join(self.lines)

    def snapshot(self) -> str:
        return self.transcript


class SessionStore:
    """In-memory store of live call sessions keyed by call id.

    Note: This is a single-process store. A crash mid-call leaks nothing
    beyond the process itself; there is no eviction besides ``remove``.

    The lock only wraps single dict operations and is never held across an
    await, so one call never waits on another call's I/O.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, CallSession] = {}

    async def get_or_create(self, call_id: str) -> CallSession:
        async with self._lock:
            session = self._sessions.get(call_id)
            if session is None:
                session = CallSession(call_id=call_id)
                self._sessions[call_id] = session
            return session

    async def get(self, call_id: str) -> CallSession | None:
        async with self._lock:
            return self._sessions.get(call_id)

    async def remove(self, call_id: str) -> CallSession | None:
        async with self._lock:
            return self._sessions.pop(call_id, None)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
