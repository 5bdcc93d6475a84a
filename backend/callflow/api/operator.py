"""Operator ring flow and softphone outbound calls.

These endpoints answer the provider with TwiML and carry no signature check:
they only decide the next instruction of a call already in progress.
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from twilio.base.exceptions import TwilioRestException

from callflow.core.config import Settings, get_settings
from callflow.core.database import get_db
from callflow.core.deps import decode_or_none, get_form
from callflow.schemas import CallbackKind
from callflow.services.call_events import log_call_event
from callflow.services.call_state import record_outbound_call, record_outbound_result
from callflow.services.context import ServiceContext, get_services
from callflow.services.phone import is_dialable, to_e164
from callflow.services.telephony import TelephonyNotConfigured
from callflow.services.twiml import TWIML_MEDIA_TYPE, TwimlBuilder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice", tags=["operator"])

OPERATOR_MAILBOX = "operator"
ANSWERED_DIAL_STATUSES = {"completed", "answered"}


def _twiml(body: str) -> Response:
    return Response(content=body, media_type=TWIML_MEDIA_TYPE)


@router.post("/connect-operator")
def connect_operator(
    mailbox: str = Query(default=OPERATOR_MAILBOX),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    builder = TwimlBuilder(settings)
    callback = decode_or_none(CallbackKind.OPERATOR_DIAL, form)
    caller = callback.caller_number if callback else None
    caller_id = caller if is_dialable(caller) else settings.twilio_phone_number
    if callback and callback.call_sid:
        log_call_event(db, callback.call_sid, "operator_transfer", menu=mailbox, action="ring")
    return _twiml(builder.operator_dial(caller_id, mailbox=mailbox))


@router.post("/screen-call")
def screen_call(settings: Settings = Depends(get_settings)):
    return _twiml(TwimlBuilder(settings).screening_prompt())


@router.post("/screen-call-result")
def screen_call_result(form: Dict[str, str] = Depends(get_form), settings: Settings = Depends(get_settings)):
    builder = TwimlBuilder(settings)
    callback = decode_or_none(CallbackKind.DIGITS, form)
    if callback and callback.digits == "1":
        # An empty response lets the provider bridge this leg to the caller.
        return _twiml(builder.empty())
    return _twiml(builder.hangup())


@router.post("/connect-operator-status")
def connect_operator_status(
    mailbox: str = Query(default=OPERATOR_MAILBOX),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    builder = TwimlBuilder(settings)
    callback = decode_or_none(CallbackKind.DIAL_RESULT, form)
    dial_status = callback.dial_call_status if callback else None
    if dial_status in ANSWERED_DIAL_STATUSES:
        return _twiml(builder.empty())
    if callback and callback.call_sid:
        log_call_event(db, callback.call_sid, "operator_unanswered", menu=mailbox, action=dial_status or "unknown")
    return _twiml(builder.text_offer_then_voicemail(mailbox))


@router.post("/connect-operator-text")
def connect_operator_text(
    mailbox: str = Query(default=OPERATOR_MAILBOX),
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    services: ServiceContext = Depends(get_services),
    settings: Settings = Depends(get_settings),
):
    builder = TwimlBuilder(settings)
    callback = decode_or_none(CallbackKind.DIGITS, form)
    call_sid = callback.call_sid if callback else None
    if callback is None or callback.digits != "1":
        if call_sid:
            log_call_event(db, call_sid, "voicemail_start", digit=callback.digits, menu=mailbox)
        return _twiml(builder.voicemail(mailbox))

    caller = callback.from_number
    if is_dialable(caller):
        send_text_reply(db, services, settings, caller, callback.called or callback.to_number)
    else:
        logger.warning("Text reply requested from undialable caller %s", caller)
    if call_sid:
        log_call_event(db, call_sid, "text_reply_requested", digit="1", menu=mailbox)
    return _twiml(builder.message_sent())


def send_text_reply(
    db: Session,
    services: ServiceContext,
    settings: Settings,
    caller: str,
    dialed_number: Optional[str],
) -> Optional[str]:
    # Reply from the number the caller dialled so the thread stays on one line.
    sender = dialed_number if is_dialable(dialed_number) else settings.twilio_phone_number
    body = settings.text_reply_message
    message_sid = None
    try:
        message_sid = services.telephony.send_sms(to_e164(caller), body, from_=sender)
    except (TwilioRestException, TelephonyNotConfigured, OSError):
        logger.error("Text reply to %s failed", caller, exc_info=True)
    threads = services.threads(db)
    thread_id = threads.find_or_create(caller)
    threads.append_outbound_message(thread_id, body, from_number=sender, provider_message_id=message_sid)
    db.commit()
    return message_sid


def sip_target(value: str) -> str:
    """sip:+18185559999@domain;transport=tls -> +18185559999 when the user part is a number."""
    if not value.startswith("sip:"):
        return value
    user = value[len("sip:"):].split("@", 1)[0].split(";", 1)[0]
    return user if is_dialable(user) else value


@router.post("/outbound")
def outbound_call(
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    builder = TwimlBuilder(settings)
    callback = decode_or_none(CallbackKind.OUTBOUND_CALL, form)
    if callback is None or not callback.to_number:
        return _twiml(builder.say_and_hangup("No destination specified. Goodbye."))
    target = sip_target(callback.to_number)
    if callback.call_sid:
        record_outbound_call(db, callback.call_sid, settings.twilio_phone_number, target)
    return _twiml(builder.outbound_dial(target, caller_id=settings.twilio_phone_number))


@router.post("/outbound-status")
def outbound_status(
    form: Dict[str, str] = Depends(get_form),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    callback = decode_or_none(CallbackKind.DIAL_RESULT, form)
    if callback and callback.call_sid:
        record_outbound_result(db, callback.call_sid, callback.dial_call_status, callback.dial_call_duration)
    return _twiml(TwimlBuilder(settings).empty())
