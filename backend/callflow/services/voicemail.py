"""Joins recording and transcription callbacks onto a single voicemail row.

The provider reports one finished recording twice (the Record action and the
recording status callback) and may deliver both concurrently. The row is keyed
by the recording id: the first arrival inserts it, every later arrival can only
fill in fields that are still unknown.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional, Sequence, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from callflow.core.database import insert_ignore, utcnow
from callflow.models import CallRecord, Voicemail
from callflow.schemas import RecordingCallback, TranscriptionCallback
from callflow.services.call_state import get_call, mark_voicemail, upsert_call
from callflow.services.phone import build_phone_variants, is_placeholder_number

logger = logging.getLogger(__name__)

DEFAULT_MAILBOX = "general"
UNKNOWN_NUMBER = "unknown"


@dataclass(frozen=True)
class RecordingFacts:
    recording_id: str
    call_sid: Optional[str]
    from_number: Optional[str]
    to_number: Optional[str]
    duration_seconds: int
    recording_url: Optional[str]
    mailbox: Optional[str]

    @classmethod
    def from_callback(cls, callback) -> "RecordingFacts":
        duration = getattr(callback, "recording_duration", None)
        return cls(
            recording_id=callback.recording_sid,
            call_sid=callback.call_sid,
            from_number=callback.from_number,
            to_number=callback.to_number,
            duration_seconds=max(duration or 0, 0),
            recording_url=callback.recording_url,
            mailbox=callback.mailbox,
        )


@dataclass(frozen=True)
class VoicemailOutcome:
    voicemail: Voicemail
    created: bool


# Correlation strategies, tried in order. Each returns the parent call or None.
CallMatcher = Callable[[Session, RecordingFacts, timedelta], Optional[CallRecord]]


def match_by_call_id(db: Session, facts: RecordingFacts, window: timedelta) -> Optional[CallRecord]:
    if not facts.call_sid:
        return None
    return get_call(db, facts.call_sid)


def match_recent_inbound_from_caller(db: Session, facts: RecordingFacts, window: timedelta) -> Optional[CallRecord]:
    # The provider can hand out a new call id after an internal redirect.
    variants = build_phone_variants(facts.from_number)
    if not variants:
        return None
    return (
        db.query(CallRecord)
        .filter(CallRecord.direction == "inbound")
        .filter(CallRecord.from_number.in_(variants))
        .filter(CallRecord.started_at >= utcnow() - window)
        .order_by(CallRecord.started_at.desc(), CallRecord.id.desc())
        .first()
    )


def synthesize_call(db: Session, facts: RecordingFacts, window: timedelta) -> CallRecord:
    call_sid = facts.call_sid or f"voicemail-{facts.recording_id}"
    call, created = upsert_call(
        db,
        call_sid,
        direction="inbound",
        from_number=facts.from_number or UNKNOWN_NUMBER,
        to_number=facts.to_number,
        status="completed",
        source="voicemail",
    )
    if created:
        logger.warning("No call found for recording %s; synthesized call %s", facts.recording_id, call_sid)
    return call


CORRELATION_CHAIN: Sequence[Tuple[str, CallMatcher]] = (
    ("call_id", match_by_call_id),
    ("recent_caller", match_recent_inbound_from_caller),
    ("synthesized", synthesize_call),
)


def correlate_call(db: Session, facts: RecordingFacts, window: timedelta) -> Tuple[CallRecord, str]:
    for name, matcher in CORRELATION_CHAIN:
        call = matcher(db, facts, window)
        if call is not None:
            return call, name
    raise LookupError(f"No correlation strategy produced a call for {facts.recording_id}")


def get_voicemail(db: Session, recording_id: str) -> Optional[Voicemail]:
    return db.query(Voicemail).filter(Voicemail.provider_recording_id == recording_id).first()


def merge_recording_facts(voicemail: Voicemail, facts: RecordingFacts, call: Optional[CallRecord] = None) -> list:
    """Fill fields that are still unknown. Never replaces a known value."""
    changed = []
    if is_placeholder_number(voicemail.from_number) and not is_placeholder_number(facts.from_number):
        voicemail.from_number = facts.from_number
        changed.append("from_number")
    if voicemail.call_id is None and call is not None:
        voicemail.call_id = call.id
        changed.append("call_id")
    if not voicemail.provider_call_id and facts.call_sid:
        voicemail.provider_call_id = facts.call_sid
        changed.append("provider_call_id")
    if not voicemail.duration_seconds and facts.duration_seconds:
        voicemail.duration_seconds = facts.duration_seconds
        changed.append("duration_seconds")
    if not voicemail.recording_url and facts.recording_url:
        voicemail.recording_url = facts.recording_url
        changed.append("recording_url")
    if voicemail.mailbox in (None, DEFAULT_MAILBOX) and facts.mailbox and facts.mailbox != voicemail.mailbox:
        voicemail.mailbox = facts.mailbox
        changed.append("mailbox")
    return changed


def _merge_into_existing(db: Session, voicemail: Voicemail, facts: RecordingFacts) -> VoicemailOutcome:
    call = None
    if voicemail.call_id is None:
        call = match_by_call_id(db, facts, timedelta(0))
    changed = merge_recording_facts(voicemail, facts, call)
    db.commit()
    if changed:
        logger.info("Voicemail %s enriched: %s", facts.recording_id, ", ".join(changed))
    else:
        logger.info("Voicemail %s already recorded; duplicate delivery ignored", facts.recording_id)
    return VoicemailOutcome(voicemail=voicemail, created=False)


def record_voicemail(
    db: Session,
    facts: RecordingFacts,
    window: timedelta = timedelta(minutes=5),
    transcription_pending: bool = False,
) -> VoicemailOutcome:
    existing = get_voicemail(db, facts.recording_id)
    if existing:
        return _merge_into_existing(db, existing, facts)

    call, strategy = correlate_call(db, facts, window)
    from_number = facts.from_number
    if is_placeholder_number(from_number) and not is_placeholder_number(call.from_number):
        from_number = call.from_number
    inserted = insert_ignore(
        db,
        Voicemail,
        {
            "provider_recording_id": facts.recording_id,
            "call_id": call.id,
            "provider_call_id": facts.call_sid or call.provider_call_id,
            "from_number": from_number or UNKNOWN_NUMBER,
            "duration_seconds": facts.duration_seconds,
            "mailbox": facts.mailbox or DEFAULT_MAILBOX,
            "recording_url": facts.recording_url,
            "playback_token": secrets.token_urlsafe(24),
            "transcription_status": "pending" if transcription_pending else None,
            "match_strategy": strategy,
        },
        index_elements=["provider_recording_id"],
    )
    if not inserted:
        # Lost the race against the other completion callback.
        db.commit()
        return _merge_into_existing(db, get_voicemail(db, facts.recording_id), facts)

    mark_voicemail(db, call)
    db.commit()
    voicemail = get_voicemail(db, facts.recording_id)
    logger.info(
        "Voicemail %s recorded for call %s via %s match",
        facts.recording_id,
        call.provider_call_id,
        strategy,
    )
    return VoicemailOutcome(voicemail=voicemail, created=True)


def record_recording_callback(
    db: Session,
    callback: RecordingCallback,
    window: timedelta = timedelta(minutes=5),
    transcription_pending: bool = False,
) -> Optional[VoicemailOutcome]:
    if not callback.recording_sid:
        return None
    if not callback.is_completed:
        logger.info("Recording %s reported %s; ignoring", callback.recording_sid, callback.recording_status)
        return None
    return record_voicemail(db, RecordingFacts.from_callback(callback), window, transcription_pending)


@dataclass(frozen=True)
class TranscriptionOutcome:
    voicemail: Voicemail
    voicemail_created: bool
    notify: bool


def merge_transcription(
    db: Session,
    callback: TranscriptionCallback,
    window: timedelta = timedelta(minutes=5),
) -> Optional[TranscriptionOutcome]:
    if not callback.recording_sid:
        return None
    outcome = record_voicemail(db, RecordingFacts.from_callback(callback), window, transcription_pending=True)
    status = "completed" if callback.succeeded else "failed"
    # Only the first transcription delivery moves the row out of pending.
    result = db.execute(
        update(Voicemail)
        .where(Voicemail.id == outcome.voicemail.id)
        .where(or_(Voicemail.transcription_status.is_(None), Voicemail.transcription_status == "pending"))
        .values(
            transcription_text=callback.transcription_text if callback.succeeded else None,
            transcription_status=status,
            updated_at=utcnow(),
        )
    )
    db.commit()
    db.refresh(outcome.voicemail)
    notify = result.rowcount == 1
    if not notify:
        logger.info("Transcription for %s already applied; duplicate ignored", callback.recording_sid)
    return TranscriptionOutcome(voicemail=outcome.voicemail, voicemail_created=outcome.created, notify=notify)
