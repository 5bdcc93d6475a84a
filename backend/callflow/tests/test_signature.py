from callflow.core.signature import SignatureVerifier
from callflow.models import CallRecord

from callflow.tests.conftest import AUTH_TOKEN, PUBLIC_BASE_URL, sign

STATUS_FORM = {"CallSid": "CA100", "From": "+13105551234", "To": "+13105550100", "CallStatus": "completed", "CallDuration": "12"}


def test_valid_signature_accepted():
    verifier = SignatureVerifier(AUTH_TOKEN, PUBLIC_BASE_URL)
    url = f"{PUBLIC_BASE_URL}/voice/status"
    assert verifier.is_valid("POST", url, STATUS_FORM, sign(url, STATUS_FORM))


def test_missing_signature_rejected_when_secret_configured():
    verifier = SignatureVerifier(AUTH_TOKEN, PUBLIC_BASE_URL)
    assert not verifier.is_valid("POST", f"{PUBLIC_BASE_URL}/voice/status", STATUS_FORM, None)


def test_tampered_params_rejected():
    verifier = SignatureVerifier(AUTH_TOKEN, PUBLIC_BASE_URL)
    url = f"{PUBLIC_BASE_URL}/voice/status"
    signature = sign(url, STATUS_FORM)
    tampered = dict(STATUS_FORM, CallDuration="0")
    assert not verifier.is_valid("POST", url, tampered, signature)


def test_no_secret_skips_verification():
    verifier = SignatureVerifier(None, PUBLIC_BASE_URL)
    assert verifier.is_valid("POST", f"{PUBLIC_BASE_URL}/voice/status", STATUS_FORM, None)


def test_url_rebuilt_from_public_base():
    verifier = SignatureVerifier(AUTH_TOKEN, "https://api.example.test/")
    rebuilt = verifier.reconstruct_url("http://10.0.0.5:8000/voice/recording?mailbox=sales", "/voice/recording", "mailbox=sales")
    assert rebuilt == "https://api.example.test/voice/recording?mailbox=sales"


def test_url_kept_without_public_base():
    verifier = SignatureVerifier(AUTH_TOKEN, None)
    assert verifier.reconstruct_url("http://testserver/voice/status", "/voice/status") == "http://testserver/voice/status"


def test_unsigned_status_callback_is_forbidden(client, db):
    response = client.post("/voice/status", data=STATUS_FORM)
    assert response.status_code == 403
    assert db.query(CallRecord).count() == 0


def test_wrong_token_is_forbidden(signed_post, db):
    response = signed_post("/voice/status", STATUS_FORM, token="someone-else")
    assert response.status_code == 403
    assert db.query(CallRecord).count() == 0


def test_signature_covers_query_string(client, db):
    form = {"CallSid": "CA100", "RecordingSid": "RE100", "RecordingUrl": "https://api.twilio.com/rec/RE100"}
    signature = sign(f"{PUBLIC_BASE_URL}/voice/recording?mailbox=sales", form)
    response = client.post("/voice/recording?mailbox=support", data=form, headers={"X-Twilio-Signature": signature})
    assert response.status_code == 403


def test_signed_status_callback_is_accepted(signed_post, db):
    response = signed_post("/voice/status", STATUS_FORM)
    assert response.status_code == 200
    assert db.query(CallRecord).count() == 1


def test_verification_skipped_without_token(client, settings, db):
    settings.twilio_auth_token = None
    response = client.post("/voice/status", data=STATUS_FORM)
    assert response.status_code == 200
    assert db.query(CallRecord).count() == 1
