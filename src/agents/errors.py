"""Domain-specific exceptions for relay and post-call operations.

These exceptions are safe to import from API layers without pulling in network clients.
"""

from __future__ import annotations


class BridgeError(Exception):
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class ConfigurationError(BridgeError):
    default_detail = "Missing OpenAI API key. Please set OPENAI_API_KEY in the environment or .env file."


class LLMFailedError(BridgeError):
    default_detail = "Chat completion request failed."


class ExtractionFailedError(BridgeError):
    default_detail = "Could not extract booking details from the transcript."


class WebhookFailedError(BridgeError):
    default_detail = "Flight webhook request failed."
