from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from callflow.core.database import Base, utcnow


class Voicemail(Base):
    __tablename__ = "voicemails"

    id = Column(Integer, primary_key=True)
    provider_recording_id = Column(String(64), unique=True, nullable=False)
    call_id = Column(Integer, ForeignKey("call_records.id"))
    provider_call_id = Column(String(64))
    from_number = Column(String(64))
    duration_seconds = Column(Integer, default=0, nullable=False)
    mailbox = Column(String(64))
    recording_url = Column(String(512))
    playback_token = Column(String(64), unique=True, nullable=False)
    transcription_text = Column(Text)
    transcription_status = Column(String(20))
    match_strategy = Column(String(32))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
