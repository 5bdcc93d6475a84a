import os
from urllib.parse import urlencode

os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///./test_callflow.db"
os.environ["PUBLIC_BASE_URL"] = "https://api.example.test"
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = "test-auth-token"
os.environ["TWILIO_PHONE_NUMBER"] = "+13105550100"
os.environ["OPERATOR_SIP_URI"] = "sip:desk@office.sip.twilio.com"
os.environ["OPERATOR_FALLBACK_NUMBER"] = "+13105550111"
os.environ["NOTIFY_SMS_TO"] = "+13105550199"
os.environ["NOTIFY_EMAIL_TO"] = "ops@example.test,owner@example.test"
os.environ["TRANSCRIBE_VOICEMAIL"] = "true"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from twilio.base.exceptions import TwilioRestException
from twilio.request_validator import RequestValidator

from callflow.core import database
from callflow.core.config import get_settings, settings as base_settings
from callflow.core.database import Base
from callflow.core.signature import SIGNATURE_HEADER
from callflow.main import app
from callflow.services.context import ServiceContext, get_services
from callflow.services.email import EmailSendError
from callflow.services.notifications import NotificationDispatcher
from callflow.services.telephony import TelephonyNotConfigured

PUBLIC_BASE_URL = "https://api.example.test"
AUTH_TOKEN = "test-auth-token"
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_callflow.db"

engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


class FakeGateway:
    def __init__(self, configured: bool = True) -> None:
        self.sent = []
        self.fail_with = None
        self.recordings = {}
        self.configured = configured
        self.default_from = base_settings.twilio_phone_number

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send_sms(self, to, body, from_=None):
        if not self.configured:
            raise TelephonyNotConfigured("Twilio client is not configured")
        if self.fail_with is not None:
            raise self.fail_with
        self.sent.append({"to": to, "body": body, "from": from_ or self.default_from})
        return f"SM{len(self.sent):032d}"

    def open_recording(self, recording_url):
        if not self.configured:
            raise TelephonyNotConfigured("Twilio client is not configured")
        status_code, content = self.recordings.get(recording_url, (404, b""))
        return httpx.Response(status_code, content=content, headers={"content-type": "audio/mpeg"})

    def close(self):
        pass


class FakeEmailSender:
    def __init__(self) -> None:
        self.sent = []
        self.fail = False
        self.configured = True

    @property
    def is_configured(self) -> bool:
        return self.configured

    def send(self, to, subject, text):
        if self.fail:
            raise EmailSendError("Email send failed: 500 upstream error")
        self.sent.append({"to": list(to), "subject": subject, "text": text})
        return f"email-{len(self.sent)}"

    def close(self):
        pass


class FakeCelery:
    def __init__(self) -> None:
        self.sent = []
        self.fail_on = set()

    def send_task(self, name, kwargs=None):
        if name in self.fail_on:
            raise ConnectionError("broker unavailable")
        self.sent.append((name, kwargs))

    def names(self, kind=None):
        return [name for name, kwargs in self.sent if kind is None or kwargs["kind"] == kind]


def twilio_error(msg="Unable to create record"):
    return TwilioRestException(status=400, uri="/Accounts/AC/Messages.json", msg=msg, code=21211, method="POST")


@pytest.fixture(scope="session", autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()
    if os.path.exists("./test_callflow.db"):
        os.remove("./test_callflow.db")


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture()
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return base_settings.model_copy()


@pytest.fixture()
def celery_stub():
    return FakeCelery()


@pytest.fixture()
def services(settings, celery_stub):
    return ServiceContext(
        settings=settings,
        telephony=FakeGateway(),
        email=FakeEmailSender(),
        dispatcher=NotificationDispatcher(celery_stub, settings),
    )


@pytest.fixture()
def client(settings, services):
    app.dependency_overrides[database.get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_services] = lambda: services
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def sign(url, params, token=AUTH_TOKEN):
    return RequestValidator(token).compute_signature(url, params)


@pytest.fixture()
def signed_post(client):
    def _post(path, data, query=None, token=AUTH_TOKEN):
        target = f"{path}?{urlencode(query)}" if query else path
        signature = sign(f"{PUBLIC_BASE_URL}{target}", data, token)
        return client.post(target, data=data, headers={SIGNATURE_HEADER: signature})

    return _post
