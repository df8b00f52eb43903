"""HTTP client for the flight lookup / dispatch webhook."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from agents.errors import WebhookFailedError
from agents.schemas import ExtractedBookingRequest
from config.settings import get_settings

LOGGER = logging.getLogger(__name__)


class FlightWebhookClient:
    """Posts JSON to the single webhook that both looks up and receives flights.

    The remote scenario tells the two requests apart by payload only.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._endpoint = endpoint or settings.flight_webhook_url
        if not self._endpoint:
            raise ValueError("Flight webhook URL is not configured.")
        self._timeout = timeout or settings.webhook_timeout_seconds
        self._transport = transport

    async def lookup(self, booking: ExtractedBookingRequest) -> Any:
        """Return the matching flight record, or ``None`` when nothing matched.

        Any empty JSON value (``{}``, ``[]``, ``null``, ``""``) counts as no
        match, so an empty object is never forwarded as a dispatch.
        """

        payload = booking.lookup_payload()
        LOGGER.info(
            "Fetching flight data for %s to %s on %s",
            payload["departure"],
            payload["arrival"],
            payload["date"],
        )
        response = await self._post(payload)
        try:
            data = response.json()
        except ValueError as exc:
            raise WebhookFailedError("Flight lookup returned a non-JSON body.") from exc

        if not data:
            return None
        LOGGER.info("Flight data received: %s", data)
        return data

    async def dispatch(self, record: Any) -> None:
        LOGGER.info("Sending data to webhook: %s", record)
        await self._post(record)
        LOGGER.info("Data successfully sent to webhook.")

    async def _post(self, payload: Any) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.post(
                    self._endpoint,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
            except httpx.HTTPError as exc:
                LOGGER.error("Webhook request failed: %s", exc)
                raise WebhookFailedError(f"Webhook request failed: {exc}") from exc

        LOGGER.debug("Webhook response status: %s", response.status_code)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            LOGGER.error("Webhook rejected request: %s", exc)
            raise WebhookFailedError(f"Webhook responded with {response.status_code}") from exc
        return response
