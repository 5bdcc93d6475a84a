"""Operator notifications for finished calls, new voicemails and transcripts.

Each terminal event fans out to two independent channels (one operational SMS
number and an email distribution list). Channels are delivered by separate
background tasks so a failure on one never holds up the other.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session
from twilio.base.exceptions import TwilioRestException

from callflow.core.config import Settings
from callflow.core.database import as_utc
from callflow.models import CallRecord, Voicemail
from callflow.services.email import EmailSendError
from callflow.services.phone import format_phone, is_dialable

logger = logging.getLogger(__name__)


class NotificationError(RuntimeError):
    pass


class NotificationKind(str, enum.Enum):
    CALL = "call"
    VOICEMAIL = "voicemail"
    TRANSCRIPTION = "transcription"


class Channel(str, enum.Enum):
    SMS = "sms"
    EMAIL = "email"


DISPOSITION_LABELS = {
    "answered": "Answered call",
    "missed": "Missed call",
    "voicemail": "New voicemail",
    "abandoned": "Abandoned call",
}


@dataclass(frozen=True)
class Notification:
    subject: str
    text: str


def channels_for(kind: NotificationKind, settings: Settings) -> List[Channel]:
    if kind is NotificationKind.CALL:
        return [Channel.SMS, Channel.EMAIL]
    if kind is NotificationKind.VOICEMAIL:
        # With transcription on, the SMS waits for the transcript instead.
        if settings.transcribe_voicemail:
            return [Channel.EMAIL]
        return [Channel.SMS, Channel.EMAIL]
    return [Channel.SMS]


def format_duration(seconds: Optional[int]) -> str:
    seconds = max(seconds or 0, 0)
    minutes, remainder = divmod(seconds, 60)
    if minutes:
        return f"{minutes}m {remainder:02d}s"
    return f"{remainder}s"


def format_local_time(value: Optional[datetime], timezone_name: str) -> str:
    value = as_utc(value)
    if value is None:
        return "unknown time"
    local = value.astimezone(ZoneInfo(timezone_name))
    return local.strftime("%a %b %d, %I:%M %p %Z")


def caller_display(call: Optional[CallRecord], from_number: Optional[str], directory) -> str:
    number = from_number or (call.from_number if call else None)
    name = call.caller_name if call else None
    if not name and directory is not None and is_dialable(number):
        try:
            match = directory.lookup_by_phone(number)
            name = match.display_name if match else None
        except Exception:
            logger.warning("Contact lookup failed while composing notification", exc_info=True)
    formatted = format_phone(number)
    if name and name != formatted:
        return f"{name} {formatted}" if is_dialable(number) else name
    return formatted


def compose_call(call: CallRecord, settings: Settings, directory=None) -> Notification:
    label = DISPOSITION_LABELS.get(call.disposition, "Call")
    caller = caller_display(call, call.from_number, directory)
    lines = [
        f"{label} from {caller}",
        f"Duration: {format_duration(call.duration)}",
        f"Time: {format_local_time(call.started_at, settings.business_timezone)}",
    ]
    return Notification(subject=f"{label} from {caller}", text="\n".join(lines))


def compose_voicemail(
    voicemail: Voicemail,
    call: Optional[CallRecord],
    settings: Settings,
    directory=None,
    with_transcript: bool = False,
) -> Notification:
    caller = caller_display(call, voicemail.from_number, directory)
    mailbox = voicemail.mailbox or "general"
    lines = [
        f"New voicemail ({mailbox}) from {caller}",
        f"Duration: {format_duration(voicemail.duration_seconds)}",
        f"Time: {format_local_time(voicemail.created_at, settings.business_timezone)}",
    ]
    if settings.public_base_url:
        lines.append(f"Listen: {settings.public_url(f'/voice/play-recording/{voicemail.playback_token}')}")
    if with_transcript:
        if voicemail.transcription_status == "completed" and voicemail.transcription_text:
            lines.append(f'Transcript: "{voicemail.transcription_text.strip()}"')
        else:
            lines.append("Transcript unavailable.")
    return Notification(subject=f"New voicemail from {caller}", text="\n".join(lines))


def build_notification(db: Session, kind: NotificationKind, record_id: int, settings: Settings, directory=None) -> Optional[Notification]:
    if kind is NotificationKind.CALL:
        call = db.get(CallRecord, record_id)
        if call is None:
            logger.warning("Call %s vanished before notification", record_id)
            return None
        return compose_call(call, settings, directory)
    voicemail = db.get(Voicemail, record_id)
    if voicemail is None:
        logger.warning("Voicemail %s vanished before notification", record_id)
        return None
    call = db.get(CallRecord, voicemail.call_id) if voicemail.call_id else None
    return compose_voicemail(
        voicemail,
        call,
        settings,
        directory,
        with_transcript=kind is NotificationKind.TRANSCRIPTION,
    )


def deliver_sms(context, db: Session, kind: NotificationKind, record_id: int) -> Optional[str]:
    target = context.settings.notify_sms_to
    if not target:
        logger.info("NOTIFY_SMS_TO not set; skipping %s SMS", kind.value)
        return None
    if not context.telephony.is_configured:
        logger.info("Twilio credentials missing; skipping %s SMS", kind.value)
        return None
    notification = build_notification(db, kind, record_id, context.settings, context.directory(db))
    if notification is None:
        return None
    try:
        return context.telephony.send_sms(target, notification.text)
    except TwilioRestException as exc:
        raise NotificationError(f"SMS notification failed: {exc.msg}") from exc


def deliver_email(context, db: Session, kind: NotificationKind, record_id: int) -> Optional[str]:
    recipients = context.settings.notify_email_to
    if not recipients:
        logger.info("NOTIFY_EMAIL_TO not set; skipping %s email", kind.value)
        return None
    if not context.email.is_configured:
        logger.info("RESEND_API_KEY not set; skipping %s email", kind.value)
        return None
    notification = build_notification(db, kind, record_id, context.settings, context.directory(db))
    if notification is None:
        return None
    try:
        return context.email.send(recipients, notification.subject, notification.text)
    except EmailSendError as exc:
        raise NotificationError(str(exc)) from exc


class NotificationDispatcher:
    """Hands notifications to the background worker, one task per channel."""

    def __init__(self, celery_app, settings: Settings) -> None:
        self.celery_app = celery_app
        self.settings = settings

    def submit(self, kind: NotificationKind, record_id: int) -> None:
        for channel in channels_for(kind, self.settings):
            try:
                self.celery_app.send_task(
                    f"callflow.tasks.notify_{channel.value}",
                    kwargs={"kind": kind.value, "record_id": record_id},
                )
            except Exception:
                logger.error(
                    "Could not enqueue %s %s notification for %s",
                    kind.value,
                    channel.value,
                    record_id,
                    exc_info=True,
                )
