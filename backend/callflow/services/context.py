"""Process-wide service context.

Built once at application startup (and once per Celery worker process), held
on ``app.state`` and handed to request handlers through ``get_services``.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from callflow.core.config import Settings
from callflow.services.directory import ContactDirectory, SqlContactDirectory, SqlThreadStore, ThreadStore
from callflow.services.email import ResendEmailSender
from callflow.services.notifications import NotificationDispatcher
from callflow.services.telephony import TwilioGateway

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    settings: Settings
    telephony: TwilioGateway
    email: ResendEmailSender
    dispatcher: Optional[NotificationDispatcher] = None
    directory_factory: Callable[[Session], ContactDirectory] = field(default=SqlContactDirectory)
    thread_factory: Callable[[Session], ThreadStore] = field(default=SqlThreadStore)

    @classmethod
    def from_settings(cls, settings: Settings, with_dispatcher: bool = True) -> "ServiceContext":
        dispatcher = None
        if with_dispatcher:
            from celery_app import celery_app

            dispatcher = NotificationDispatcher(celery_app, settings)
        return cls(
            settings=settings,
            telephony=TwilioGateway.from_settings(settings),
            email=ResendEmailSender.from_settings(settings),
            dispatcher=dispatcher,
        )

    def directory(self, db: Session) -> ContactDirectory:
        return self.directory_factory(db)

    def threads(self, db: Session) -> ThreadStore:
        return self.thread_factory(db)

    def notify(self, kind, record_id: int) -> None:
        if self.dispatcher is None:
            logger.warning("No notification dispatcher configured; dropping %s notification", kind.value)
            return
        self.dispatcher.submit(kind, record_id)

    def close(self) -> None:
        self.telephony.close()
        self.email.close()


def get_services(request: Request) -> ServiceContext:
    return request.app.state.services
