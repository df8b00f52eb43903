from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from agents.errors import ExtractionFailedError, LLMFailedError
from agents.extraction import BookingExtractor, completion_content
from llm.base import BaseLLMClient
from llm.openai_client import OpenAIClient


class FakeLLM(BaseLLMClient):
    def __init__(self, response: dict) -> None:
        self._response = response
        self.calls: list[dict] = []

    async def chat_completion(self, messages, *, temperature: float = 0.7, json_response: bool = False) -> dict:
        self.calls.append(
            {"messages": list(messages), "temperature": temperature, "json_response": json_response}
        )
        return self._response


def _completion(content) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content}}]}


def _run(coro):
    return asyncio.run(coro)


TRANSCRIPT = "User: I want to fly from Paris to Nice on June 5\nAgent: Let me check that for you\n"


def test_extract_parses_booking_fields():
    llm = FakeLLM(
        _completion(
            json.dumps(
                {
                    "flightDeparture": "Paris",
                    "flightArrival": "Nice",
                    "date": "2024-06-05",
                    "notes": "window seat",
                }
            )
        )
    )

    booking = _run(BookingExtractor(llm).extract(TRANSCRIPT))

    assert booking.departure_city == "Paris"
    assert booking.arrival_city == "Nice"
    assert booking.date == "2024-06-05"
    assert booking.notes == "window seat"
    assert booking.lookup_payload() == {"departure": "Paris", "arrival": "Nice", "date": "2024-06-05"}

    call = llm.calls[0]
    assert call["json_response"] is True
    assert call["messages"][0]["role"] == "system"
    assert "departure city" in call["messages"][0]["content"]
    assert call["messages"][1] == {"role": "user", "content": TRANSCRIPT}


@pytest.mark.parametrize(
    "response",
    [
        {},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": None}}]},
    ],
)
def test_extract_fails_on_unexpected_response_shape(response):
    with pytest.raises(ExtractionFailedError):
        _run(BookingExtractor(FakeLLM(response)).extract(TRANSCRIPT))


def test_extract_fails_on_invalid_json_content():
    with pytest.raises(ExtractionFailedError, match="Invalid extraction JSON"):
        _run(BookingExtractor(FakeLLM(_completion("{not valid json"))).extract(TRANSCRIPT))


def test_extract_fails_when_fields_are_missing():
    llm = FakeLLM(_completion(json.dumps({"flightDeparture": "Paris", "date": "2024-06-05"})))
    with pytest.raises(ExtractionFailedError):
        _run(BookingExtractor(llm).extract(TRANSCRIPT))


def test_completion_content_returns_message_text():
    assert completion_content(_completion('{"a": 1}')) == '{"a": 1}'


class FakeCompletions:
    def __init__(self, *, error: Exception | None = None) -> None:
        self._error = error
        self.kwargs: dict = {}

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self._error is not None:
            raise self._error
        return SimpleNamespace(model_dump=lambda: _completion('{"ok": true}'))


def _fake_sdk(completions: FakeCompletions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def test_openai_client_returns_plain_dict_and_requests_json_object():
    completions = FakeCompletions()
    client = OpenAIClient(client=_fake_sdk(completions))

    response = _run(client.chat_completion([{"role": "user", "content": "hi"}], json_response=True))

    assert response == _completion('{"ok": true}')
    assert completions.kwargs["model"] == "gpt-4o-2024-08-06"
    assert completions.kwargs["response_format"] == {"type": "json_object"}


def test_openai_client_wraps_sdk_errors():
    client = OpenAIClient(client=_fake_sdk(FakeCompletions(error=OpenAIError("boom"))))

    with pytest.raises(LLMFailedError):
        _run(client.chat_completion([{"role": "user", "content": "hi"}]))
