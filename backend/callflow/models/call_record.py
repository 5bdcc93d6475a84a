from sqlalchemy import Column, DateTime, Integer, JSON, String
from callflow.core.database import Base, utcnow


class CallRecord(Base):
    __tablename__ = "call_records"

    id = Column(Integer, primary_key=True)
    provider_call_id = Column(String(64), unique=True, nullable=False)
    direction = Column(String(10), nullable=False, default="inbound")
    from_number = Column(String(64), index=True)
    to_number = Column(String(64))
    status = Column(String(20))
    disposition = Column(String(20))
    duration = Column(Integer, default=0, nullable=False)
    started_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    ended_at = Column(DateTime(timezone=True))
    contact_id = Column(Integer)
    caller_name = Column(String(255))
    caller_city = Column(String(120))
    caller_state = Column(String(64))
    source = Column(String(20))
    raw_payload = Column(JSON, default=dict)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_inbound(self) -> bool:
        return self.direction == "inbound"
