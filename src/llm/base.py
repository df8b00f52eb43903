"""Shared abstractions for language model clients."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable


class BaseLLMClient(ABC):
    """Abstract base class for chat completion providers."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: Iterable[dict[str, str]],
        *,
        temperature: float = 0.7,
        json_response: bool = False,
    ) -> dict[str, Any]:
        """Return the raw chat completion response body as a dict.

        Callers inspect ``choices[0].message.content`` themselves so that an
        unexpected response shape can be handled at the call site.
        """
