"""Domain events emitted by availability and participant mutations."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel


class AvailabilityChanged(BaseModel):
    """Fired after an availability was created, updated or deleted.

    ``previous_count`` is the simultaneous count read before the mutation,
    or -1 when it could not be read.
    """

    calendar_id: str
    date: date
    previous_count: int


class VerificationEmailRequested(BaseModel):
    """Fired when a participant needs a (new) email verification link."""

    participant_id: str
    email: str
    name: str
    locale: str
    token: str
