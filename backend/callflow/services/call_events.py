import logging
from typing import Optional

from sqlalchemy.orm import Session

from callflow.models import CallEvent
from callflow.schemas import CallEventCallback

logger = logging.getLogger(__name__)


def log_call_event(
    db: Session,
    provider_call_id: Optional[str],
    event_type: str,
    digit: Optional[str] = None,
    menu: Optional[str] = None,
    action: Optional[str] = None,
    payload: Optional[dict] = None,
) -> CallEvent:
    event = CallEvent(
        provider_call_id=provider_call_id,
        event_type=event_type,
        digit=digit,
        menu=menu,
        action=action,
        payload=payload or {},
    )
    db.add(event)
    db.commit()
    return event


def record_ivr_event(db: Session, callback: CallEventCallback) -> CallEvent:
    if not callback.call_sid:
        logger.warning("IVR event %s arrived without a CallSid; logging it unlinked", callback.event_type)
    return log_call_event(
        db,
        callback.call_sid,
        callback.event_type,
        digit=callback.digit,
        menu=callback.menu,
        action=callback.action,
        payload=callback.model_dump(mode="json", exclude={"kind"}, exclude_none=True),
    )
