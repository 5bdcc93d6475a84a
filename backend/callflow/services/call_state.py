"""Authoritative call lifecycle record, written by independent callback handlers."""
import logging
from typing import Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from callflow.core.database import insert_ignore, utcnow
from callflow.models import CallRecord
from callflow.schemas import TERMINAL_STATUSES, CallStatusCallback, IncomingCall
from callflow.services.phone import resolve_caller

logger = logging.getLogger(__name__)


def derive_disposition(status: Optional[str], duration: Optional[int]) -> Optional[str]:
    if status == "completed":
        return "answered" if (duration or 0) > 0 else "missed"
    if status in {"no-answer", "busy"}:
        return "missed"
    if status in {"failed", "canceled"}:
        return "abandoned"
    return None


def get_call(db: Session, provider_call_id: str) -> Optional[CallRecord]:
    return db.query(CallRecord).filter(CallRecord.provider_call_id == provider_call_id).first()


def upsert_call(db: Session, provider_call_id: str, **values) -> Tuple[CallRecord, bool]:
    """Create the call record on first sighting; return it with a created flag."""
    values.setdefault("started_at", utcnow())
    created = insert_ignore(
        db,
        CallRecord,
        {"provider_call_id": provider_call_id, **values},
        index_elements=["provider_call_id"],
    )
    call = get_call(db, provider_call_id)
    if created:
        logger.info("Call %s recorded (%s)", provider_call_id, values.get("source") or "unknown source")
    return call, created


def attach_identity(db: Session, call: CallRecord, directory, fallback_name: Optional[str] = None) -> None:
    if call.contact_id or not call.is_inbound:
        return
    identity = resolve_caller(directory, call.from_number, fallback_name=fallback_name)
    if identity:
        call.contact_id = identity.contact_id
        call.caller_name = call.caller_name or identity.display_name
        db.flush()


def record_incoming_call(db: Session, callback: IncomingCall, directory) -> Optional[CallRecord]:
    if not callback.call_sid:
        return None
    call, _ = upsert_call(
        db,
        callback.call_sid,
        direction="inbound",
        from_number=callback.from_number,
        to_number=callback.to_number,
        status=callback.call_status or "ringing",
        source="ivr",
        raw_payload=callback.model_dump(mode="json", by_alias=True, exclude_none=True),
    )
    # A status callback may have created the row first with less caller detail.
    call.caller_city = call.caller_city or callback.caller_city
    call.caller_state = call.caller_state or callback.caller_state
    if callback.caller_name and not call.caller_name:
        call.caller_name = callback.caller_name
    attach_identity(db, call, directory, fallback_name=callback.caller_name)
    db.commit()
    return call


def claim_disposition(db: Session, call_id: int, disposition: str) -> bool:
    """Set the disposition only if nobody has set it yet. True when this caller won."""
    result = db.execute(
        update(CallRecord)
        .where(CallRecord.id == call_id, CallRecord.disposition.is_(None))
        .values(disposition=disposition)
    )
    return result.rowcount == 1


def apply_status(db: Session, callback: CallStatusCallback, directory) -> Tuple[Optional[CallRecord], bool]:
    """Apply a status callback. Returns the call and whether a terminal notification is due."""
    if not callback.call_sid or not callback.call_status:
        return None, False
    call, created = upsert_call(
        db,
        callback.call_sid,
        direction=callback.normalized_direction,
        from_number=callback.from_number,
        to_number=callback.to_number,
        status=callback.call_status,
        source="status",
    )
    if created:
        attach_identity(db, call, directory)
    call.status = callback.call_status
    if callback.call_duration is not None:
        call.duration = max(callback.call_duration, 0)
    call.raw_payload = callback.model_dump(mode="json", by_alias=True, exclude_none=True)

    notify = False
    if callback.call_status in TERMINAL_STATUSES:
        call.ended_at = call.ended_at or utcnow()
        db.flush()
        disposition = derive_disposition(callback.call_status, callback.call_duration)
        claimed = claim_disposition(db, call.id, disposition)
        notify = claimed and call.is_inbound
        if not claimed:
            logger.info("Call %s already has a disposition; skipping notification", call.provider_call_id)
    db.commit()
    db.refresh(call)
    return call, notify


def mark_voicemail(db: Session, call: CallRecord) -> None:
    db.execute(update(CallRecord).where(CallRecord.id == call.id).values(disposition="voicemail"))


def record_outbound_call(db: Session, provider_call_id: str, from_number: Optional[str], to_number: str) -> CallRecord:
    call, _ = upsert_call(
        db,
        provider_call_id,
        direction="outbound",
        from_number=from_number,
        to_number=to_number,
        status="initiated",
        source="softphone",
    )
    db.commit()
    return call


def record_outbound_result(db: Session, provider_call_id: str, dial_status: Optional[str], duration: Optional[int]) -> Optional[CallRecord]:
    call = get_call(db, provider_call_id)
    if not call:
        return None
    status = dial_status or "completed"
    call.status = status
    call.duration = max(duration or 0, 0)
    call.ended_at = call.ended_at or utcnow()
    call.disposition = derive_disposition(status, duration)
    db.commit()
    return call
