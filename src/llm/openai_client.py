"""OpenAI chat completion client wrapper."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from agents.errors import ConfigurationError, LLMFailedError
from config.settings import get_settings
from llm.base import BaseLLMClient

LOGGER = logging.getLogger(__name__)


class OpenAIClient(BaseLLMClient):
    """Wrapper for the OpenAI Chat Completion API."""

    def __init__(self, client: AsyncOpenAI | None = None) -> None:
        settings = get_settings()
        if client is None:
            if not settings.openai_api_key:
                raise ConfigurationError()
            client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url or None,
            )
        self._client = client
        self._model = settings.extraction_model

    async def chat_completion(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
        json_response: bool = False,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if json_response:
            kwargs["response_format"] = {"type": "json_object"}

        LOGGER.info("Starting chat completion call (model=%s)", self._model)
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=list(messages),
                temperature=temperature,
                **kwargs,
            )
        except OpenAIError as exc:
            LOGGER.error("Error making chat completion call: %s", exc)
            raise LLMFailedError(str(exc)) from exc

        return completion.model_dump()
