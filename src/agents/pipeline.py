"""Post-call pipeline: transcript -> booking details -> flight lookup -> dispatch."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from agents.errors import BridgeError
from agents.extraction import BookingExtractor
from agents.schemas import ExtractedBookingRequest
from integrations.flight_webhook import FlightWebhookClient

LOGGER = logging.getLogger(__name__)


class TranscriptPipeline:
    """Runs once per finished call and never raises back into the caller.

    Work is spawned as detached tasks that may outlive the relay that started
    them. Every stage fails closed: the first error is logged and ends the run
    for that call. Nothing is retried.
    """

    def __init__(self, extractor: BookingExtractor, webhook: FlightWebhookClient) -> None:
        self._extractor = extractor
        self._webhook = webhook
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, call_id: str, transcript: str) -> asyncio.Task[None]:
        task = asyncio.create_task(self.run(call_id, transcript), name=f"transcript-pipeline:{call_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for spawned runs to finish (used on shutdown)."""

        if self._tasks:
            LOGGER.info("Waiting for %d transcript pipeline run(s)", len(self._tasks))
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def run(self, call_id: str, transcript: str) -> None:
        LOGGER.info("Starting transcript processing for call %s", call_id)
        if not transcript.strip():
            LOGGER.info("Empty transcript for call %s; nothing to extract", call_id)
            return

        try:
            await self._run_stages(call_id, transcript)
        except BridgeError as exc:
            LOGGER.warning("Transcript pipeline aborted for call %s: %s", call_id, exc.detail)
        except Exception:
            LOGGER.exception("Transcript pipeline crashed for call %s", call_id)

    async def _run_stages(self, call_id: str, transcript: str) -> None:
        booking = await self._extractor.extract(transcript)
        LOGGER.info(
            "Call %s wants %s -> %s on %s",
            call_id,
            booking.departure_city,
            booking.arrival_city,
            booking.date,
        )

        record = await self._lookup(call_id, booking)
        if record is None:
            return

        try:
            await self._webhook.dispatch(record)
        except BridgeError as exc:
            LOGGER.error("Failed to send flight details for call %s: %s", call_id, exc.detail)
            return
        LOGGER.info("Flight details sent for call %s", call_id)

    async def _lookup(self, call_id: str, booking: ExtractedBookingRequest) -> Any:
        try:
            record = await self._webhook.lookup(booking)
        except BridgeError as exc:
            LOGGER.error("Failed to fetch flight data for call %s: %s", call_id, exc.detail)
            return None
        if record is None:
            LOGGER.info("No matching flight found for call %s", call_id)
        return record
