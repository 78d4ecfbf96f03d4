"""Localised notification bodies for chat channels and email."""

from __future__ import annotations

from html import escape

from quorum.domain.models import ThresholdTransition, TransitionType

DEFAULT_LOCALE = "en"

_TRANSLATIONS: dict[str, dict[str, str]] = {
    "en": {
        "subject": "Quorum Calendar Notification",
        "reached": (
            "Threshold reached for {date}! ({count}/{threshold} participants available)"
        ),
        "lost": "Threshold lost for {date} ({count}/{threshold} participants)",
        "changed": "Availability changed for {date} ({count}/{threshold} participants)",
        "calendar_label": "Calendar:",
        "date_label": "Date:",
        "participants_label": "Participants available:",
        "participant_list_label": "Participant list:",
        "view_button": "View Calendar",
        "cancel_button": "Cancel my participation",
        "verify_subject": "Confirm your email address",
        "verify_greeting": "Hello {name},",
        "verify_intro": (
            "Please confirm your email address to receive calendar notifications."
        ),
        "verify_button": "Confirm my email",
        "verify_expiry": "This link expires in {hours} hours.",
    },
    "fr": {
        "subject": "Notification de Calendrier Quorum",
        "reached": (
            "Seuil atteint pour {date} ! ({count}/{threshold} participants disponibles)"
        ),
        "lost": "Seuil perdu pour {date} ({count}/{threshold} participants)",
        "changed": (
            "Disponibilité modifiée pour {date} ({count}/{threshold} participants)"
        ),
        "calendar_label": "Calendrier :",
        "date_label": "Date :",
        "participants_label": "Participants disponibles :",
        "participant_list_label": "Liste des participants :",
        "view_button": "Voir le calendrier",
        "cancel_button": "Annuler ma participation",
        "verify_subject": "Confirmez votre adresse email",
        "verify_greeting": "Bonjour {name},",
        "verify_intro": (
            "Merci de confirmer votre adresse email pour recevoir "
            "les notifications du calendrier."
        ),
        "verify_button": "Confirmer mon email",
        "verify_expiry": "Ce lien expire dans {hours} heures.",
    },
}

_EMOJI = {
    TransitionType.THRESHOLD_REACHED: "\U0001f389",
    TransitionType.THRESHOLD_LOST: "⚠️",
}

_MESSAGE_KEY = {
    TransitionType.THRESHOLD_REACHED: "reached",
    TransitionType.THRESHOLD_LOST: "lost",
}


def translations(locale: str | None) -> dict[str, str]:
    return _TRANSLATIONS.get(locale or DEFAULT_LOCALE, _TRANSLATIONS[DEFAULT_LOCALE])


def email_subject(locale: str | None) -> str:
    return translations(locale)["subject"]


def _headline(transition: ThresholdTransition, locale: str | None) -> str:
    key = _MESSAGE_KEY.get(transition.transition_type, "changed")
    return translations(locale)[key].format(
        date=transition.date.isoformat(),
        count=transition.new_count,
        threshold=transition.threshold,
    )


def render_text(calendar_name: str, transition: ThresholdTransition) -> str:
    """One-line English message for the chat channels."""
    emoji = _EMOJI.get(transition.transition_type)
    text = f"Calendar '{calendar_name}': {_headline(transition, DEFAULT_LOCALE)}"
    return f"{emoji} {text}" if emoji else text


def render_html(
    calendar_name: str,
    transition: ThresholdTransition,
    calendar_url: str,
    locale: str | None,
    participant_names: list[str],
    show_cancel: bool,
) -> str:
    """HTML email body with a calendar link and, optionally, a cancel link.

    The cancel link points at the same participant view with the date in a
    ``cancel`` query parameter.
    """
    t = translations(locale)
    date_str = transition.date.isoformat()
    emoji = _EMOJI.get(transition.transition_type, "")

    names_html = ""
    if participant_names:
        items = "".join(f"<li>{escape(name)}</li>" for name in participant_names)
        names_html = (
            '<div class="participant-list">'
            f'<div class="participant-list-header">{t["participant_list_label"]}</div>'
            f'<ul class="participant-names">{items}</ul></div>'
        )

    cancel_html = ""
    if show_cancel:
        cancel_url = f"{calendar_url}?cancel={date_str}"
        cancel_html = (
            f'<a href="{escape(cancel_url)}" class="btn btn-danger">'
            f'{t["cancel_button"]}</a>'
        )

    return f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body>
  <div class="container">
    <div class="header">{emoji} {escape(_headline(transition, locale))}</div>
    <div class="message">{t["calendar_label"]} <span class="calendar-name">{escape(calendar_name)}</span></div>
    <div class="date-info">{t["date_label"]} {date_str}</div>
    <div class="message">{t["participants_label"]} <strong>{transition.new_count}/{transition.threshold}</strong></div>
    {names_html}
    <div class="buttons">
      <a href="{escape(calendar_url)}" class="btn btn-primary">{t["view_button"]}</a>
      {cancel_html}
    </div>
  </div>
</body>
</html>
"""


def render_verification(
    name: str, verification_url: str, locale: str | None, expiry_hours: int
) -> tuple[str, str]:
    """Return ``(subject, html_body)`` for a participant verification email."""
    t = translations(locale)
    body = f"""<!DOCTYPE html>
<html>
<head><meta charset="UTF-8"></head>
<body>
  <p>{escape(t["verify_greeting"].format(name=name))}</p>
  <p>{t["verify_intro"]}</p>
  <p><a href="{escape(verification_url)}">{t["verify_button"]}</a></p>
  <p>{escape(verification_url)}</p>
  <p>{t["verify_expiry"].format(hours=expiry_hours)}</p>
</body>
</html>
"""
    return t["verify_subject"], body
