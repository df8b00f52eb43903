"""Pydantic schemas for post-call extraction."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractedBookingRequest(BaseModel):
    """Booking details pulled out of a finished call's transcript."""

    model_config = ConfigDict(populate_by_name=True)

    departure_city: str = Field(alias="flightDeparture")
    arrival_city: str = Field(alias="flightArrival")
    date: str
    notes: str | None = None

    @field_validator("departure_city", "arrival_city", "date")
    def not_blank(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError("Value may not be empty.")
        return text

    def lookup_payload(self) -> dict[str, Any]:
        return {
            "departure": self.departure_city,
            "arrival": self.arrival_city,
            "date": self.date,
        }
