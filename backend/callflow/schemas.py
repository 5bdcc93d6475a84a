"""Typed provider callbacks.

Every webhook body is decoded into exactly one of these models before any
handler logic runs. Field aliases are the provider's form keys.
"""
import enum
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class MalformedCallback(ValueError):
    """Raised when a callback body cannot be decoded into its typed model."""


class CallbackKind(str, enum.Enum):
    INCOMING_CALL = "incoming_call"
    CALL_EVENT = "call_event"
    CALL_STATUS = "call_status"
    RECORDING = "recording"
    TRANSCRIPTION = "transcription"
    OPERATOR_DIAL = "operator_dial"
    DIAL_RESULT = "dial_result"
    DIGITS = "digits"
    OUTBOUND_CALL = "outbound_call"


TERMINAL_STATUSES = frozenset({"completed", "no-answer", "busy", "failed", "canceled"})


class ProviderCallback(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    call_sid: Optional[str] = Field(default=None, alias="CallSid")
    from_number: Optional[str] = Field(default=None, alias="From")
    to_number: Optional[str] = Field(default=None, alias="To")

    @field_validator("*", mode="before")
    def blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value


class IncomingCall(ProviderCallback):
    kind: CallbackKind = CallbackKind.INCOMING_CALL
    call_status: Optional[str] = Field(default=None, alias="CallStatus")
    caller_name: Optional[str] = Field(default=None, alias="CallerName")
    caller_city: Optional[str] = Field(default=None, alias="CallerCity")
    caller_state: Optional[str] = Field(default=None, alias="CallerState")


class CallEventCallback(ProviderCallback):
    kind: CallbackKind = CallbackKind.CALL_EVENT
    event_type: str = "unknown"
    digit: Optional[str] = None
    menu: Optional[str] = None
    action: Optional[str] = None


class CallStatusCallback(ProviderCallback):
    kind: CallbackKind = CallbackKind.CALL_STATUS
    call_status: Optional[str] = Field(default=None, alias="CallStatus")
    call_duration: Optional[int] = Field(default=None, alias="CallDuration")
    direction: Optional[str] = Field(default=None, alias="Direction")

    @property
    def is_terminal(self) -> bool:
        return self.call_status in TERMINAL_STATUSES

    @property
    def normalized_direction(self) -> str:
        if self.direction and self.direction.startswith("outbound"):
            return "outbound"
        return "inbound"


class RecordingCallback(ProviderCallback):
    kind: CallbackKind = CallbackKind.RECORDING
    recording_sid: Optional[str] = Field(default=None, alias="RecordingSid")
    recording_url: Optional[str] = Field(default=None, alias="RecordingUrl")
    recording_status: Optional[str] = Field(default=None, alias="RecordingStatus")
    recording_duration: Optional[int] = Field(default=None, alias="RecordingDuration")
    mailbox: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        # The inline Record action carries no RecordingStatus.
        return self.recording_status in (None, "completed")


class TranscriptionCallback(ProviderCallback):
    kind: CallbackKind = CallbackKind.TRANSCRIPTION
    recording_sid: Optional[str] = Field(default=None, alias="RecordingSid")
    recording_url: Optional[str] = Field(default=None, alias="RecordingUrl")
    transcription_sid: Optional[str] = Field(default=None, alias="TranscriptionSid")
    transcription_text: Optional[str] = Field(default=None, alias="TranscriptionText")
    transcription_status: Optional[str] = Field(default=None, alias="TranscriptionStatus")
    mailbox: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.transcription_status == "completed" and bool(self.transcription_text)


class OperatorDial(ProviderCallback):
    kind: CallbackKind = CallbackKind.OPERATOR_DIAL
    caller: Optional[str] = Field(default=None, alias="Caller")

    @property
    def caller_number(self) -> Optional[str]:
        return self.from_number or self.caller


class DialResult(ProviderCallback):
    kind: CallbackKind = CallbackKind.DIAL_RESULT
    dial_call_status: Optional[str] = Field(default=None, alias="DialCallStatus")
    dial_call_duration: Optional[int] = Field(default=None, alias="DialCallDuration")
    called: Optional[str] = Field(default=None, alias="Called")


class DigitsResult(ProviderCallback):
    kind: CallbackKind = CallbackKind.DIGITS
    digits: Optional[str] = Field(default=None, alias="Digits")
    called: Optional[str] = Field(default=None, alias="Called")
    mailbox: Optional[str] = None


class OutboundCall(ProviderCallback):
    kind: CallbackKind = CallbackKind.OUTBOUND_CALL
    caller: Optional[str] = Field(default=None, alias="Caller")


_MODELS = {
    CallbackKind.INCOMING_CALL: IncomingCall,
    CallbackKind.CALL_EVENT: CallEventCallback,
    CallbackKind.CALL_STATUS: CallStatusCallback,
    CallbackKind.RECORDING: RecordingCallback,
    CallbackKind.TRANSCRIPTION: TranscriptionCallback,
    CallbackKind.OPERATOR_DIAL: OperatorDial,
    CallbackKind.DIAL_RESULT: DialResult,
    CallbackKind.DIGITS: DigitsResult,
    CallbackKind.OUTBOUND_CALL: OutboundCall,
}

# Studio widgets post snake_case keys, direct provider callbacks PascalCase.
_EVENT_KEYS = {
    "event_type": ("event_type", "EventType"),
    "digit": ("digit", "Digits", "Digit"),
    "menu": ("menu", "Menu"),
    "action": ("action", "Action"),
}


def _first(form: Mapping[str, str], keys: tuple) -> Optional[str]:
    for key in keys:
        value = form.get(key)
        if value:
            return value
    return None


def decode_callback(kind: CallbackKind, form: Mapping[str, str], mailbox: Optional[str] = None) -> ProviderCallback:
    data = dict(form)
    if kind is CallbackKind.CALL_EVENT:
        for field, keys in _EVENT_KEYS.items():
            data[field] = _first(form, keys)
        if not data["event_type"]:
            data["event_type"] = "unknown"
    if mailbox:
        data["mailbox"] = mailbox
    try:
        return _MODELS[kind].model_validate(data)
    except ValidationError as exc:
        raise MalformedCallback(f"Malformed {kind.value} callback: {exc.error_count()} invalid field(s)") from exc
