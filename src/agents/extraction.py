"""LLM-powered extraction of flight booking details from a call transcript."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from agents.errors import ExtractionFailedError
from agents.schemas import ExtractedBookingRequest
from config.settings import get_settings
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)


def completion_content(response: dict[str, Any]) -> str:
    """Return ``choices[0].message.content`` or raise ``ExtractionFailedError``."""

    choices = response.get("choices") if isinstance(response, dict) else None
    if not choices:
        raise ExtractionFailedError("Unexpected response structure from chat completion API")
    message = (choices[0] or {}).get("message") or {}
    content = message.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ExtractionFailedError("Chat completion response has no message content")
    return content


class BookingExtractor:
    """Turns a finished conversation into an :class:`ExtractedBookingRequest`."""

    def __init__(self, llm_client: BaseLLMClient) -> None:
        self._llm = llm_client
        self._temperature = get_settings().extraction_temperature

    async def extract(self, transcript: str) -> ExtractedBookingRequest:
        messages = [
            {"role": "system", "content": load_prompt("extraction_system.txt")},
            {"role": "user", "content": transcript},
        ]
        response = await self._llm.chat_completion(
            messages,
            temperature=self._temperature,
            json_response=True,
        )

        content = completion_content(response)
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            LOGGER.error("Extractor returned invalid JSON: %s", content)
            raise ExtractionFailedError("Invalid extraction JSON") from exc

        if not isinstance(payload, dict):
            raise ExtractionFailedError("Unexpected JSON structure in extraction response")

        try:
            return ExtractedBookingRequest.model_validate(payload)
        except ValidationError as exc:
            LOGGER.warning("Extraction payload missing booking fields %s: %s", payload, exc)
            raise ExtractionFailedError("Extraction payload missing booking fields") from exc
