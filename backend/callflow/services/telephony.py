import logging
from typing import Optional

import httpx
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from callflow.core.config import Settings

logger = logging.getLogger(__name__)


class TelephonyNotConfigured(RuntimeError):
    pass


class TwilioGateway:
    """Outbound calls to the provider's REST API: SMS sends and recording downloads."""

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str], default_from: Optional[str], timeout: float) -> None:
        self.default_from = default_from
        self._auth = (account_sid, auth_token) if account_sid and auth_token else None
        self._client: Optional[Client] = None
        self._http: Optional[httpx.Client] = None
        if self._auth:
            self._client = Client(account_sid, auth_token, http_client=TwilioHttpClient(timeout=timeout))
            self._http = httpx.Client(timeout=timeout, follow_redirects=True)
        else:
            logger.warning("Twilio credentials missing; SMS sending and recording playback disabled")

    @classmethod
    def from_settings(cls, settings: Settings) -> "TwilioGateway":
        return cls(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_phone_number,
            settings.http_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def send_sms(self, to: str, body: str, from_: Optional[str] = None) -> str:
        if not self._client:
            raise TelephonyNotConfigured("Twilio client is not configured")
        sender = from_ or self.default_from
        message = self._client.messages.create(to=to, from_=sender, body=body)
        logger.info("SMS %s sent to %s from %s", message.sid, to, sender)
        return message.sid

    def open_recording(self, recording_url: str) -> httpx.Response:
        """Start streaming a recording; the caller must close the response."""
        if not self._http:
            raise TelephonyNotConfigured("Twilio client is not configured")
        url = recording_url if recording_url.endswith(".mp3") else f"{recording_url}.mp3"
        request = self._http.build_request("GET", url, auth=self._auth)
        return self._http.send(request, stream=True)

    def close(self) -> None:
        if self._http:
            self._http.close()
