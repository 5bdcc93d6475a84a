import logging
from datetime import timedelta
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.background import BackgroundTask

from callflow.core.config import Settings, get_settings
from callflow.core.database import get_db
from callflow.core.deps import decode_or_none, get_form, verify_signature
from callflow.models import Voicemail
from callflow.schemas import CallbackKind
from callflow.services.call_events import record_ivr_event
from callflow.services.call_state import apply_status, record_incoming_call
from callflow.services.context import ServiceContext, get_services
from callflow.services.hours import business_status
from callflow.services.notifications import NotificationKind
from callflow.services.telephony import TelephonyNotConfigured
from callflow.services.twiml import TWIML_MEDIA_TYPE, TwimlBuilder
from callflow.services.voicemail import merge_transcription, record_recording_callback

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["voice"])


def _ok() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@router.post("/incoming")
def incoming_call(
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
):
    callback = decode_or_none(CallbackKind.INCOMING_CALL, form)
    if callback is None or not callback.call_sid:
        return _ok()
    call = record_incoming_call(db, callback, services.directory(db))
    return {"call_id": call.id, "contact_id": call.contact_id, "caller_name": call.caller_name}


@router.post("/event")
def call_event(form: Dict[str, str] = Depends(get_form), db: Session = Depends(get_db)):
    callback = decode_or_none(CallbackKind.CALL_EVENT, form)
    if callback is not None:
        record_ivr_event(db, callback)
    return _ok()


@router.post("/status", dependencies=[Depends(verify_signature)])
def call_status(
    background_tasks: BackgroundTasks,
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
):
    callback = decode_or_none(CallbackKind.CALL_STATUS, form)
    if callback is None:
        return _ok()
    call, notify = apply_status(db, callback, services.directory(db))
    if notify:
        background_tasks.add_task(services.notify, NotificationKind.CALL, call.id)
    return _ok()


def _record_voicemail(form, mailbox, db, services, settings, background_tasks) -> None:
    callback = decode_or_none(CallbackKind.RECORDING, form, mailbox)
    if callback is None:
        return
    outcome = record_recording_callback(
        db,
        callback,
        window=timedelta(minutes=settings.correlation_window_minutes),
        transcription_pending=settings.transcribe_voicemail,
    )
    if outcome and outcome.created:
        background_tasks.add_task(services.notify, NotificationKind.VOICEMAIL, outcome.voicemail.id)


@router.post("/recording", dependencies=[Depends(verify_signature)])
def recording_status(
    background_tasks: BackgroundTasks,
    mailbox: Optional[str] = Query(default=None),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    _record_voicemail(form, mailbox, db, services, settings, background_tasks)
    return _ok()


@router.post("/voicemail-recorded", dependencies=[Depends(verify_signature)])
def voicemail_recorded(
    background_tasks: BackgroundTasks,
    mailbox: Optional[str] = Query(default=None),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    _record_voicemail(form, mailbox, db, services, settings, background_tasks)
    return Response(content=TwimlBuilder(settings).goodbye(), media_type=TWIML_MEDIA_TYPE)


@router.post("/transcription", dependencies=[Depends(verify_signature)])
def transcription(
    background_tasks: BackgroundTasks,
    mailbox: Optional[str] = Query(default=None),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    callback = decode_or_none(CallbackKind.TRANSCRIPTION, form, mailbox)
    if callback is None:
        return _ok()
    outcome = merge_transcription(db, callback, window=timedelta(minutes=settings.correlation_window_minutes))
    if outcome is None:
        return _ok()
    if outcome.voicemail_created:
        background_tasks.add_task(services.notify, NotificationKind.VOICEMAIL, outcome.voicemail.id)
    if outcome.notify:
        background_tasks.add_task(services.notify, NotificationKind.TRANSCRIPTION, outcome.voicemail.id)
    return _ok()


@router.get("/play-recording/{token}")
def play_recording(
    token: str,
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
):
    voicemail = db.query(Voicemail).filter(Voicemail.playback_token == token).first()
    if not voicemail or not voicemail.recording_url:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Recording not found")
    try:
        upstream = services.telephony.open_recording(voicemail.recording_url)
    except TelephonyNotConfigured as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Playback unavailable") from exc
    except httpx.HTTPError as exc:
        logger.warning("Recording fetch failed for voicemail %s: %s", voicemail.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Recording unavailable") from exc
    if upstream.status_code != 200:
        upstream.close()
        logger.warning("Recording fetch for voicemail %s returned %s", voicemail.id, upstream.status_code)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Recording unavailable")
    return StreamingResponse(
        upstream.iter_bytes(),
        media_type=upstream.headers.get("content-type", "audio/mpeg"),
        background=BackgroundTask(upstream.close),
    )


@router.get("/hours-check")
def hours_check(settings: Settings = Depends(get_settings)):
    return business_status(settings)
