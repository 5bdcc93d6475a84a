"""Contact directory and conversation thread collaborators.

The webhook handlers only depend on the two protocols below. The SQL-backed
implementations are the defaults used by the service.
"""
from dataclasses import dataclass
from typing import Optional, Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from callflow.core.database import utcnow
from callflow.models import Contact, Conversation, Message
from callflow.services.phone import build_phone_variants, normalize_phone


@dataclass(frozen=True)
class ContactMatch:
    id: int
    display_name: Optional[str]


class ContactDirectory(Protocol):
    def lookup_by_phone(self, phone: str) -> Optional[ContactMatch]: ...

    def create_unknown(self, phone: str, display_name: Optional[str] = None) -> int: ...


class ThreadStore(Protocol):
    def find_or_create(self, phone: str) -> int: ...

    def append_outbound_message(
        self,
        thread_id: int,
        body: str,
        from_number: Optional[str] = None,
        provider_message_id: Optional[str] = None,
    ) -> int: ...


class SqlContactDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def lookup_by_phone(self, phone: str) -> Optional[ContactMatch]:
        variants = build_phone_variants(phone)
        if not variants:
            return None
        contact = (
            self.db.query(Contact)
            .filter(or_(Contact.phone_normalized.in_(variants), Contact.phone.in_(variants)))
            .order_by(Contact.id.asc())
            .first()
        )
        if not contact:
            return None
        return ContactMatch(id=contact.id, display_name=contact.full_name)

    def create_unknown(self, phone: str, display_name: Optional[str] = None) -> int:
        contact = Contact(
            full_name=display_name,
            phone=phone,
            phone_normalized=normalize_phone(phone),
            source="inbound_call",
        )
        self.db.add(contact)
        self.db.flush()
        return contact.id


class SqlThreadStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find_or_create(self, phone: str) -> int:
        normalized = normalize_phone(phone) or phone
        conversation = (
            self.db.query(Conversation)
            .filter(Conversation.phone_normalized == normalized)
            .first()
        )
        if conversation:
            return conversation.id
        match = SqlContactDirectory(self.db).lookup_by_phone(phone)
        conversation = Conversation(
            phone_normalized=normalized,
            display_phone=phone,
            contact_id=match.id if match else None,
        )
        self.db.add(conversation)
        self.db.flush()
        return conversation.id

    def append_outbound_message(
        self,
        thread_id: int,
        body: str,
        from_number: Optional[str] = None,
        provider_message_id: Optional[str] = None,
    ) -> int:
        conversation = self.db.get(Conversation, thread_id)
        message = Message(
            conversation_id=thread_id,
            direction="outbound",
            body=body,
            from_number=from_number,
            to_number=conversation.display_phone if conversation else None,
            provider_message_id=provider_message_id,
            status="sent" if provider_message_id else "failed",
        )
        self.db.add(message)
        if conversation:
            conversation.last_message_at = utcnow()
        self.db.flush()
        return message.id
