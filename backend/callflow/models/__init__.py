from callflow.models.call_record import CallRecord
from callflow.models.call_event import CallEvent
from callflow.models.voicemail import Voicemail
from callflow.models.contact import Contact, Conversation, Message

__all__ = ["CallRecord", "CallEvent", "Voicemail", "Contact", "Conversation", "Message"]
