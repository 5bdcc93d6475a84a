from sqlalchemy import Column, DateTime, Integer, JSON, String
from callflow.core.database import Base, utcnow


class CallEvent(Base):
    __tablename__ = "call_events"

    id = Column(Integer, primary_key=True)
    # No foreign key: events can arrive before the call record exists.
    provider_call_id = Column(String(64), index=True)
    event_type = Column(String(64), nullable=False)
    digit = Column(String(8))
    menu = Column(String(64))
    action = Column(String(64))
    payload = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
