from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from callflow.core.database import Base, utcnow


class Contact(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True)
    full_name = Column(String(255))
    phone = Column(String(64))
    phone_normalized = Column(String(32), index=True)
    source = Column(String(32), default="manual")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True)
    phone_normalized = Column(String(32), unique=True, nullable=False)
    display_phone = Column(String(64))
    contact_id = Column(Integer, ForeignKey("contacts.id"))
    last_message_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    direction = Column(String(10), nullable=False)
    body = Column(Text, nullable=False)
    from_number = Column(String(64))
    to_number = Column(String(64))
    provider_message_id = Column(String(64))
    status = Column(String(20))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
