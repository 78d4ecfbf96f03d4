"""Participant email addresses and their verification."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from quorum.config import Settings
from quorum.domain.bus import EventBus
from quorum.domain.errors import (
    ChannelError,
    EmailVerificationError,
    InvalidVerificationToken,
)
from quorum.domain.events import VerificationEmailRequested
from quorum.domain.models import Participant
from quorum.observability import get_logger
from quorum.repos.memory import CalendarRepository, ParticipantRepository
from quorum.services import messages
from quorum.services.lookup import calendar_by_token, participant_in_calendar
from quorum.services.notify import EmailSender

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_verification_token() -> str:
    return secrets.token_hex(32)


class ParticipantEmailService:
    """Stores participant addresses unverified and confirms them by token.

    Only verified addresses receive threshold emails. The verification mail
    itself is sent from a bus handler so callers never wait on SMTP.
    """

    def __init__(
        self,
        calendar_repo: CalendarRepository,
        participant_repo: ParticipantRepository,
        bus: EventBus,
        email_sender: EmailSender,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.calendar_repo = calendar_repo
        self.participant_repo = participant_repo
        self.bus = bus
        self.email_sender = email_sender
        self.settings = settings
        self.clock = clock

    def add_email(self, token: str, participant_id: str, email: str) -> Participant:
        calendar = calendar_by_token(self.calendar_repo, token)
        participant = participant_in_calendar(
            self.participant_repo, calendar, participant_id
        )

        email = email.strip()
        if "@" not in email:
            raise EmailVerificationError("invalid email address")

        updated = self._issue_token(participant, email)
        logger.info("participant_email_added", participant_id=participant.id)
        return updated

    def verify_email(self, verification_token: str) -> Participant:
        participant = self.participant_repo.get_by_verification_token(
            verification_token
        )
        if participant is None:
            raise InvalidVerificationToken()
        if participant.email_verified:
            return participant

        expires_at = participant.verification_expires_at
        if expires_at is not None and expires_at < self.clock():
            raise InvalidVerificationToken()

        verified = participant.model_copy(update={"email_verified": True})
        self.participant_repo.update(verified)
        logger.info("participant_email_verified", participant_id=participant.id)
        return verified

    def resend_verification(self, token: str, participant_id: str) -> Participant:
        calendar = calendar_by_token(self.calendar_repo, token)
        participant = participant_in_calendar(
            self.participant_repo, calendar, participant_id
        )
        if participant.email_verified:
            raise EmailVerificationError("email already verified")
        if not participant.email:
            raise EmailVerificationError("no email address set for this participant")

        updated = self._issue_token(participant, participant.email)
        logger.info("participant_verification_resent", participant_id=participant.id)
        return updated

    def send_verification_email(self, event: VerificationEmailRequested) -> None:
        if not self.email_sender.is_configured():
            logger.warning(
                "verification_email_skipped",
                participant_id=event.participant_id,
                reason="smtp_not_configured",
            )
            return

        url = f"{self.settings.app_url.rstrip('/')}/c/verify-email/{event.token}"
        subject, body = messages.render_verification(
            event.name, url, event.locale, self.settings.email_verification_hours
        )
        try:
            self.email_sender.send(event.email, subject, body)
        except ChannelError:
            logger.exception(
                "verification_email_failed", participant_id=event.participant_id
            )

    def _issue_token(self, participant: Participant, email: str) -> Participant:
        verification_token = new_verification_token()
        updated = participant.model_copy(
            update={
                "email": email,
                "email_verified": False,
                "verification_token": verification_token,
                "verification_expires_at": self.clock()
                + timedelta(hours=self.settings.email_verification_hours),
            }
        )
        self.participant_repo.update(updated)
        self.bus.publish(
            VerificationEmailRequested(
                participant_id=updated.id,
                email=email,
                name=updated.name,
                locale=updated.locale,
                token=verification_token,
            )
        )
        return updated
