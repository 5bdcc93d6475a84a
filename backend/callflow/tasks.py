from typing import Optional

from celery import shared_task
from celery.signals import worker_process_shutdown
from sqlalchemy.orm import Session

from callflow.core.config import settings
from callflow.core.database import SessionLocal
from callflow.services.context import ServiceContext
from callflow.services.notifications import NotificationError, NotificationKind, deliver_email, deliver_sms


_context: Optional[ServiceContext] = None

# requests' connection errors derive from OSError.
RETRYABLE = (NotificationError, OSError)


def get_worker_context() -> ServiceContext:
    global _context
    if _context is None:
        _context = ServiceContext.from_settings(settings, with_dispatcher=False)
    return _context


@worker_process_shutdown.connect
def close_worker_context(**kwargs) -> None:
    global _context
    if _context is not None:
        _context.close()
        _context = None


@shared_task(
    name="callflow.tasks.notify_sms",
    bind=True,
    autoretry_for=RETRYABLE,
    retry_backoff=True,
    retry_jitter=True,
    retry_kwargs={"max_retries": settings.notify_max_retries},
)
def notify_sms(self, kind: str, record_id: int):
    db: Session = SessionLocal()
    try:
        return deliver_sms(get_worker_context(), db, NotificationKind(kind), record_id)
    finally:
        db.close()


@shared_task(
    name="callflow.tasks.notify_email",
    bind=True,
    autoretry_for=RETRYABLE,
    retry_backoff=True,
    retry_jitter=True,
    retry_kwargs={"max_retries": settings.notify_max_retries},
)
def notify_email(self, kind: str, record_id: int):
    db: Session = SessionLocal()
    try:
        return deliver_email(get_worker_context(), db, NotificationKind(kind), record_id)
    finally:
        db.close()
