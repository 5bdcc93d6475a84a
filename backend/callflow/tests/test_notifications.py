from datetime import datetime, timezone

import pytest

from callflow import tasks
from callflow.models import CallRecord, Contact, Voicemail
from callflow.services.notifications import (
    Channel,
    NotificationError,
    NotificationKind,
    build_notification,
    channels_for,
    compose_call,
    compose_voicemail,
    deliver_email,
    deliver_sms,
    format_duration,
)

from callflow.tests.conftest import PUBLIC_BASE_URL, TestingSessionLocal, twilio_error

STARTED = datetime(2026, 3, 2, 20, 5, tzinfo=timezone.utc)


def make_call(db, disposition="missed", duration=75, caller_name="Jane Doe", from_number="+13105551234"):
    call = CallRecord(
        provider_call_id="CA10",
        direction="inbound",
        from_number=from_number,
        to_number="+13105550100",
        status="completed",
        disposition=disposition,
        duration=duration,
        started_at=STARTED,
        caller_name=caller_name,
    )
    db.add(call)
    db.commit()
    return call


def make_voicemail(db, call, **values):
    voicemail = Voicemail(
        provider_recording_id="RE10",
        call_id=call.id,
        provider_call_id=call.provider_call_id,
        from_number=call.from_number,
        duration_seconds=42,
        mailbox="operator",
        recording_url="https://api.twilio.com/2010-04-01/Accounts/AC1/Recordings/RE10",
        playback_token="tok-RE10",
        created_at=STARTED,
        **values,
    )
    db.add(voicemail)
    db.commit()
    return voicemail


def test_channels(settings):
    assert channels_for(NotificationKind.CALL, settings) == [Channel.SMS, Channel.EMAIL]
    assert channels_for(NotificationKind.VOICEMAIL, settings) == [Channel.EMAIL]
    assert channels_for(NotificationKind.TRANSCRIPTION, settings) == [Channel.SMS]
    settings.transcribe_voicemail = False
    assert channels_for(NotificationKind.VOICEMAIL, settings) == [Channel.SMS, Channel.EMAIL]


@pytest.mark.parametrize("seconds,expected", [(0, "0s"), (None, "0s"), (9, "9s"), (75, "1m 15s"), (600, "10m 00s")])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_compose_call_summary(db, settings):
    notification = compose_call(make_call(db), settings)
    assert notification.subject == "Missed call from Jane Doe (310) 555-1234"
    assert notification.text.splitlines() == [
        "Missed call from Jane Doe (310) 555-1234",
        "Duration: 1m 15s",
        "Time: Mon Mar 02, 12:05 PM PST",
    ]


def test_compose_call_without_name_uses_phone(db, settings):
    notification = compose_call(make_call(db, disposition="answered", caller_name=None), settings)
    assert notification.subject == "Answered call from (310) 555-1234"


def test_compose_call_with_withheld_number(db, settings):
    notification = compose_call(make_call(db, caller_name=None, from_number="anonymous"), settings)
    assert "Unknown caller" in notification.subject


def test_compose_voicemail_with_transcript(db, settings):
    call = make_call(db, disposition="voicemail")
    voicemail = make_voicemail(db, call, transcription_status="completed", transcription_text=" Call me back. ")
    notification = compose_voicemail(voicemail, call, settings, with_transcript=True)
    assert notification.subject == "New voicemail from Jane Doe (310) 555-1234"
    assert "New voicemail (operator) from Jane Doe (310) 555-1234" in notification.text
    assert "Duration: 42s" in notification.text
    assert f"Listen: {PUBLIC_BASE_URL}/voice/play-recording/tok-RE10" in notification.text
    assert 'Transcript: "Call me back."' in notification.text


def test_compose_voicemail_with_failed_transcript(db, settings):
    call = make_call(db, disposition="voicemail")
    voicemail = make_voicemail(db, call, transcription_status="failed")
    notification = compose_voicemail(voicemail, call, settings, with_transcript=True)
    assert "Transcript unavailable." in notification.text


def test_plain_voicemail_has_no_transcript_line(db, settings):
    call = make_call(db, disposition="voicemail")
    voicemail = make_voicemail(db, call, transcription_status="pending")
    notification = build_notification(db, NotificationKind.VOICEMAIL, voicemail.id, settings)
    assert "Transcript" not in notification.text


def test_directory_name_used_when_call_has_none(db, services):
    db.add(Contact(full_name="Acme Plumbing", phone="+13105551234", phone_normalized="3105551234"))
    call = make_call(db, caller_name=None)
    notification = build_notification(db, NotificationKind.CALL, call.id, services.settings, services.directory(db))
    assert notification.subject == "Missed call from Acme Plumbing (310) 555-1234"


def test_missing_record_builds_nothing(db, settings):
    assert build_notification(db, NotificationKind.CALL, 9999, settings) is None


def test_deliver_sms(db, services):
    call = make_call(db)
    sid = deliver_sms(services, db, NotificationKind.CALL, call.id)
    assert sid.startswith("SM")
    sent = services.telephony.sent[0]
    assert sent["to"] == "+13105550199"
    assert sent["body"].startswith("Missed call from Jane Doe")


def test_deliver_sms_failure_is_retryable(db, services):
    call = make_call(db)
    services.telephony.fail_with = twilio_error()
    with pytest.raises(NotificationError):
        deliver_sms(services, db, NotificationKind.CALL, call.id)


def test_deliver_sms_skipped_without_target(db, services):
    services.settings.notify_sms_to = None
    call = make_call(db)
    assert deliver_sms(services, db, NotificationKind.CALL, call.id) is None
    assert services.telephony.sent == []


def test_deliver_email(db, services):
    call = make_call(db)
    deliver_email(services, db, NotificationKind.CALL, call.id)
    sent = services.email.sent[0]
    assert sent["to"] == ["ops@example.test", "owner@example.test"]
    assert sent["subject"] == "Missed call from Jane Doe (310) 555-1234"


def test_email_failure_does_not_touch_sms(db, services):
    call = make_call(db)
    services.email.fail = True
    with pytest.raises(NotificationError):
        deliver_email(services, db, NotificationKind.CALL, call.id)
    deliver_sms(services, db, NotificationKind.CALL, call.id)
    assert len(services.telephony.sent) == 1


def test_dispatcher_enqueues_one_task_per_channel(services, celery_stub):
    services.notify(NotificationKind.CALL, 12)
    assert celery_stub.sent == [
        ("callflow.tasks.notify_sms", {"kind": "call", "record_id": 12}),
        ("callflow.tasks.notify_email", {"kind": "call", "record_id": 12}),
    ]


def test_worker_task_delivers_with_worker_context(db, services, monkeypatch):
    call = make_call(db)
    monkeypatch.setattr(tasks, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr(tasks, "get_worker_context", lambda: services)
    tasks.notify_email("call", call.id)
    assert len(services.email.sent) == 1


def test_worker_tasks_retry_on_channel_errors():
    for task in (tasks.notify_sms, tasks.notify_email):
        assert NotificationError in task.autoretry_for
        assert task.retry_backoff


def test_unconfigured_sms_channel_is_skipped(db, services):
    services.telephony.configured = False
    call = make_call(db)
    assert deliver_sms(services, db, NotificationKind.CALL, call.id) is None


def test_unconfigured_email_channel_is_skipped(db, services):
    services.email.configured = False
    call = make_call(db)
    assert deliver_email(services, db, NotificationKind.CALL, call.id) is None
    assert services.email.sent == []
