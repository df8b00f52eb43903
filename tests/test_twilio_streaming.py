from __future__ import annotations

import asyncio
import json

import pytest

from integrations.twilio_streaming import (
    MediaEvent,
    OtherTwilioEvent,
    SessionStore,
    StartEvent,
    StopEvent,
    build_media_frame,
    parse_twilio_ws_message,
)


def _run(coro):
    return asyncio.run(coro)


def test_parse_start_event_reads_stream_sid_and_call_sid():
    event = parse_twilio_ws_message(
        json.dumps(
            {
                "event": "start",
                "start": {
                    "streamSid": "MZ123",
                    "callSid": "CA123",
                    "customParameters": {"lang": "en"},
                },
            }
        )
    )
    assert event == StartEvent(stream_sid="MZ123", call_sid="CA123", custom_parameters={"lang": "en"})


def test_parse_media_and_stop_and_unknown_events():
    media = parse_twilio_ws_message('{"event": "media", "media": {"payload": "//8=", "track": "inbound"}}')
    assert media == MediaEvent(payload="//8=", track="inbound")

    assert parse_twilio_ws_message('{"event": "stop", "streamSid": "MZ1"}') == StopEvent(stream_sid="MZ1")
    assert parse_twilio_ws_message('{"event": "mark"}') == OtherTwilioEvent(event="mark")
    assert parse_twilio_ws_message('{"event": "connected", "protocol": "Call"}') == OtherTwilioEvent(
        event="connected"
    )


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2]",
        '{"event": "start", "start": {}}',
        '{"event": "media", "media": {}}',
        '{"event": "media", "media": "abc"}',
        '{"event": "start", "start": ["x"]}',
        '{"event": "start", "start": {"streamSid": "MZ9", "customParameters": ["a"]}}',
    ],
)
def test_parse_rejects_malformed_frames(raw):
    with pytest.raises(ValueError):
        parse_twilio_ws_message(raw)


def test_build_media_frame_shape():
    assert build_media_frame("MZ1", "AAAA") == {
        "event": "media",
        "streamSid": "MZ1",
        "media": {"payload": "AAAA"},
    }


def test_get_or_create_returns_same_session_until_removed():
    async def scenario():
        store = SessionStore()
        first = await store.get_or_create("CA1")
        second = await store.get_or_create("CA1")
        other = await store.get_or_create("CA2")
        removed = await store.remove("CA1")
        fresh = await store.get_or_create("CA1")
        return first, second, other, removed, fresh, store

    first, second, other, removed, fresh, store = _run(scenario())
    assert first is second
    assert other is not first
    assert removed is first
    assert fresh is not first
    assert "CA1" in store and "CA2" in store
    assert len(store) == 2


def test_concurrent_get_or_create_yields_one_session():
    async def scenario():
        store = SessionStore()
        sessions = await asyncio.gather(*(store.get_or_create("CA1") for _ in range(20)))
        return store, sessions

    store, sessions = _run(scenario())
    assert len(store) == 1
    assert all(session is sessions[0] for session in sessions)


def test_remove_unknown_call_is_noop():
    store = SessionStore()
    assert _run(store.remove("missing")) is None


def test_stream_sid_is_never_reassigned():
    async def scenario():
        store = SessionStore()
        return await store.get_or_create("CA1")

    session = _run(scenario())
    assert session.stream_sid is None
    assert session.assign_stream_sid("MZ1") is True
    assert session.assign_stream_sid("MZ2") is False
    assert session.stream_sid == "MZ1"


def test_transcript_keeps_conversation_order_and_snapshot_is_detached():
    async def scenario():
        store = SessionStore()
        return await store.get_or_create("CA1")

    session = _run(scenario())
    session.append_user("I want to fly from Paris to Nice on June 5")
    session.append_agent("Let me check that for you")
    snapshot = session.snapshot()
    session.append_user("Thanks")

    assert snapshot == (
        "User: I want to fly from Paris to Nice on June 5\n"
        "Agent: Let me check that for you\n"
    )
    assert session.transcript.endswith("User: Thanks\n")
