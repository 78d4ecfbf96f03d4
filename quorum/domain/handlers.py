"""Domain event handlers, wired up at application startup."""

from __future__ import annotations

from quorum.domain.bus import EventBus
from quorum.domain.events import AvailabilityChanged, VerificationEmailRequested
from quorum.services.notify import NotifyService
from quorum.services.participant_email import ParticipantEmailService


class HandlerRegistry:
    """Routes availability and participant events to their background work."""

    def __init__(
        self,
        bus: EventBus,
        notify_service: NotifyService,
        participant_email_service: ParticipantEmailService,
    ) -> None:
        self.bus = bus
        self.notify_service = notify_service
        self.participant_email_service = participant_email_service
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(AvailabilityChanged, self.on_availability_changed)
        self.bus.subscribe(VerificationEmailRequested, self.on_verification_requested)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_availability_changed(self, event: AvailabilityChanged) -> None:
        self.notify_service.check_threshold_and_notify(
            event.calendar_id, event.date, event.previous_count
        )

    def on_verification_requested(self, event: VerificationEmailRequested) -> None:
        self.participant_email_service.send_verification_email(event)
