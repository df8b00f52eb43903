"""Twilio Voice integration.

This module provides:
- Call webhook (TwiML) that greets the caller and opens a Media Stream.
- Media Stream WebSocket that relays audio to the OpenAI Realtime API.
"""

from __future__ import annotations

import logging
from urllib.parse import urlencode
from xml.sax.saxutils import escape

from fastapi import APIRouter, Depends, Request, Response, WebSocket

from agents.media_relay import MediaStreamRelay, SpeechLinkFactory
from agents.pipeline import TranscriptPipeline
from api.dependencies import get_session_store, get_speech_link_factory, get_transcript_pipeline
from config.settings import get_settings
from integrations.twilio_streaming import SessionStore

LOGGER = logging.getLogger(__name__)

router = APIRouter(tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    return Response(content=xml, media_type="text/xml")


def _to_ws_url(http_url: str) -> str:
    if http_url.startswith("https://"):
        return "wss://" + http_url.removeprefix("https://")
    if http_url.startswith("http://"):
        return "ws://" + http_url.removeprefix("http://")
    return http_url


def _twiml_connect_stream(*, greeting: str, stream_url: str) -> str:
    say = escape(greeting)
    stream = escape(stream_url, {'"': "&quot;"})
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        f"<Say>{say}</Say>"
        "<Connect>"
        f"<Stream url=\"{stream}\" />"
        "</Connect>"
        "</Response>"
    )


def _stream_url(request: Request, call_sid: str | None) -> str:
    settings = get_settings()
    if settings.public_base_url:
        base = _to_ws_url(settings.public_base_url.rstrip("/"))
    else:
        base = f"wss://{request.headers.get('host', request.url.netloc)}"
    url = f"{base}/media-stream"
    if call_sid:
        url += "?" + urlencode({"callSid": call_sid})
    return url


@router.api_route("/incoming-call", methods=["GET", "POST"])
async def incoming_call(request: Request) -> Response:
    form = await request.form() if request.method == "POST" else {}
    call_sid = str(form.get("CallSid") or request.query_params.get("CallSid") or "").strip() or None
    LOGGER.info("Incoming call %s", call_sid or "(no CallSid)")

    return _twiml_response(
        _twiml_connect_stream(
            greeting=get_settings().greeting_text,
            stream_url=_stream_url(request, call_sid),
        )
    )


@router.websocket("/media-stream")
async def media_stream(
    websocket: WebSocket,
    store: SessionStore = Depends(get_session_store),
    pipeline: TranscriptPipeline = Depends(get_transcript_pipeline),
    link_factory: SpeechLinkFactory = Depends(get_speech_link_factory),
) -> None:
    relay = MediaStreamRelay(websocket, store, pipeline, link_factory)
    await relay.run()
