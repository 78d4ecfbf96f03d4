"""FastAPI application: entry point for the shared availability calendar."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from quorum.config import get_settings
from quorum.domain.bus import EventBus
from quorum.domain.errors import (
    AvailabilityExists,
    AvailabilityNotFound,
    CalendarNotFound,
    ParticipantNotFound,
    QuorumError,
    RecurrenceNotFound,
    RecurrenceOverlap,
)
from quorum.domain.handlers import HandlerRegistry
from quorum.domain.models import (
    AddEmailRequest,
    AvailabilityResponse,
    CreateAvailabilityRequest,
    CreateExceptionRequest,
    CreateRecurrenceRequest,
    DateAvailabilitySummary,
    ParticipantAvailabilities,
    ParticipantInfo,
    Recurrence,
    RecurrenceException,
    RecurrenceWithExceptions,
    ThresholdSegment,
    UpdateAvailabilityRequest,
    UpdateRecurrenceRequest,
)
from quorum.observability import get_logger, setup_logging
from quorum.repos.memory import (
    AvailabilityRepository,
    CalendarRepository,
    NotificationLogRepository,
    ParticipantRepository,
    RecurrenceRepository,
    UserRepository,
)
from quorum.services.aggregation import AvailabilityAggregator
from quorum.services.availability import AvailabilityService
from quorum.services.channels import SMTPEmailSender, WebhookNotifier
from quorum.services.notify import NotifyService
from quorum.services.participant_email import ParticipantEmailService
from quorum.services.threshold import ThresholdDetector

settings = get_settings()
setup_logging(settings.log_level, json=settings.log_json)
logger = get_logger(__name__)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus(
    ThreadPoolExecutor(max_workers=settings.notify_workers, thread_name_prefix="notify")
)
calendar_repo = CalendarRepository()
user_repo = UserRepository()
participant_repo = ParticipantRepository()
availability_repo = AvailabilityRepository()
recurrence_repo = RecurrenceRepository()
notification_log = NotificationLogRepository()

aggregator = AvailabilityAggregator(participant_repo, availability_repo, recurrence_repo)
email_sender = SMTPEmailSender(settings)
webhook_notifier = WebhookNotifier(settings)

availability_service = AvailabilityService(
    calendar_repo=calendar_repo,
    participant_repo=participant_repo,
    availability_repo=availability_repo,
    recurrence_repo=recurrence_repo,
    aggregator=aggregator,
    bus=event_bus,
)
notify_service = NotifyService(
    calendar_repo=calendar_repo,
    participant_repo=participant_repo,
    user_repo=user_repo,
    notification_log=notification_log,
    aggregator=aggregator,
    detector=ThresholdDetector(aggregator),
    email_sender=email_sender,
    external_notifier=webhook_notifier,
    settings=settings,
)
participant_email_service = ParticipantEmailService(
    calendar_repo=calendar_repo,
    participant_repo=participant_repo,
    bus=event_bus,
    email_sender=email_sender,
    settings=settings,
)

handler_registry = HandlerRegistry(
    bus=event_bus,
    notify_service=notify_service,
    participant_email_service=participant_email_service,
)


@asynccontextmanager
async def lifespan(_: FastAPI):
    yield
    event_bus.shutdown(wait=True)
    webhook_notifier.close()


app = FastAPI(title="Quorum Calendar Service", lifespan=lifespan)


# ── Error mapping ─────────────────────────────────────────────────────

_NOT_FOUND = (
    CalendarNotFound,
    ParticipantNotFound,
    AvailabilityNotFound,
    RecurrenceNotFound,
)
_CONFLICT = (AvailabilityExists, RecurrenceOverlap)


def status_for(error: QuorumError) -> int:
    if isinstance(error, _NOT_FOUND):
        return 404
    if isinstance(error, _CONFLICT):
        return 409
    return 400


@app.exception_handler(QuorumError)
async def _quorum_error(request: Request, exc: QuorumError) -> JSONResponse:
    status = status_for(exc)
    logger.info(
        "request_rejected",
        path=request.url.path,
        error=type(exc).__name__,
        status=status,
    )
    return JSONResponse(status_code=status, content={"detail": str(exc)})


# ── Routes ────────────────────────────────────────────────────────────

_BASE = "/api/v1/calendars/{token}"


@app.post(
    _BASE + "/participants/{participant_id}/availabilities",
    response_model=AvailabilityResponse,
    status_code=201,
)
def create_availability(
    token: str, participant_id: str, body: CreateAvailabilityRequest
) -> AvailabilityResponse:
    return availability_service.create_availability(token, participant_id, body)


@app.get(
    _BASE + "/participants/{participant_id}/availabilities",
    response_model=ParticipantAvailabilities,
)
def list_participant_availabilities(
    token: str,
    participant_id: str,
    start_date: str | None = None,
    end_date: str | None = None,
) -> ParticipantAvailabilities:
    return availability_service.get_participant_availabilities(
        token, participant_id, start_date, end_date
    )


@app.patch(
    _BASE + "/participants/{participant_id}/availabilities/{date}",
    response_model=AvailabilityResponse,
)
def update_availability(
    token: str, participant_id: str, date: str, body: UpdateAvailabilityRequest
) -> AvailabilityResponse:
    return availability_service.update_availability(token, participant_id, date, body)


@app.delete(
    _BASE + "/participants/{participant_id}/availabilities/{date}", status_code=204
)
def delete_availability(token: str, participant_id: str, date: str) -> None:
    availability_service.delete_availability(token, participant_id, date)


@app.get(_BASE + "/availabilities/date/{date}", response_model=DateAvailabilitySummary)
def get_date_summary(token: str, date: str) -> DateAvailabilitySummary:
    return availability_service.get_date_summary(token, date)


@app.get(_BASE + "/availabilities/range", response_model=list[DateAvailabilitySummary])
def get_range_summary(
    token: str, start: str, end: str, participant_id: str | None = None
) -> list[DateAvailabilitySummary]:
    return availability_service.get_range_summary(token, start, end, participant_id)


@app.get(
    _BASE + "/availabilities/date/{date}/threshold-windows",
    response_model=list[ThresholdSegment],
)
def get_threshold_windows(token: str, date: str) -> list[ThresholdSegment]:
    return availability_service.get_threshold_windows(token, date)


@app.post(
    _BASE + "/participants/{participant_id}/recurrences",
    response_model=Recurrence,
    status_code=201,
)
def create_recurrence(
    token: str, participant_id: str, body: CreateRecurrenceRequest
) -> Recurrence:
    return availability_service.create_recurrence(token, participant_id, body)


@app.get(
    _BASE + "/participants/{participant_id}/recurrences",
    response_model=list[RecurrenceWithExceptions],
)
def list_recurrences(token: str, participant_id: str) -> list[RecurrenceWithExceptions]:
    return availability_service.get_participant_recurrences(token, participant_id)


@app.put(
    _BASE + "/participants/{participant_id}/recurrences/{recurrence_id}",
    response_model=Recurrence,
)
def update_recurrence(
    token: str, participant_id: str, recurrence_id: str, body: UpdateRecurrenceRequest
) -> Recurrence:
    return availability_service.update_recurrence(
        token, participant_id, recurrence_id, body
    )


@app.delete(
    _BASE + "/participants/{participant_id}/recurrences/{recurrence_id}",
    status_code=204,
)
def delete_recurrence(token: str, participant_id: str, recurrence_id: str) -> None:
    availability_service.delete_recurrence(token, participant_id, recurrence_id)


@app.post(
    _BASE + "/participants/{participant_id}/recurrences/{recurrence_id}/exceptions",
    response_model=RecurrenceException,
    status_code=201,
)
def create_exception(
    token: str, participant_id: str, recurrence_id: str, body: CreateExceptionRequest
) -> RecurrenceException:
    return availability_service.create_exception(
        token, participant_id, recurrence_id, body
    )


@app.delete(
    _BASE
    + "/participants/{participant_id}/recurrences/{recurrence_id}/exceptions/{date}",
    status_code=204,
)
def delete_exception(
    token: str, participant_id: str, recurrence_id: str, date: str
) -> None:
    availability_service.delete_exception(token, participant_id, recurrence_id, date)


@app.post(_BASE + "/participants/{participant_id}/email", response_model=ParticipantInfo)
def add_email(token: str, participant_id: str, body: AddEmailRequest) -> ParticipantInfo:
    participant = participant_email_service.add_email(token, participant_id, body.email)
    return ParticipantInfo(**participant.model_dump())


@app.post(
    _BASE + "/participants/{participant_id}/email/resend",
    response_model=ParticipantInfo,
)
def resend_verification(token: str, participant_id: str) -> ParticipantInfo:
    participant = participant_email_service.resend_verification(token, participant_id)
    return ParticipantInfo(**participant.model_dump())


@app.post("/api/v1/participants/verify-email/{verification_token}")
def verify_email(verification_token: str) -> dict:
    participant = participant_email_service.verify_email(verification_token)
    return {"participant_id": participant.id, "email_verified": True}


@app.post("/api/v1/maintenance/notification-log/cleanup")
def cleanup_notification_log() -> dict:
    """Drop notification log entries past the retention window."""
    return {"removed": notify_service.cleanup_old_logs()}
