import logging
from typing import List, Optional

import httpx

from callflow.core.config import Settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


class EmailSendError(RuntimeError):
    pass


class ResendEmailSender:
    def __init__(self, api_key: Optional[str], from_address: str, from_name: Optional[str], timeout: float) -> None:
        self.api_key = api_key
        self.from_address = f"{from_name} <{from_address}>" if from_name else from_address
        self._client = httpx.Client(timeout=timeout)
        if not api_key:
            logger.warning("RESEND_API_KEY is not set; email notifications disabled")

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResendEmailSender":
        return cls(
            settings.resend_api_key,
            settings.email_from,
            settings.email_from_name,
            settings.http_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def send(self, to: List[str], subject: str, text: str) -> str:
        if not self.api_key:
            raise EmailSendError("Email service not configured")
        try:
            response = self._client.post(
                RESEND_API_URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={"from": self.from_address, "to": to, "subject": subject, "text": text},
            )
        except httpx.HTTPError as exc:
            raise EmailSendError(f"Email request failed: {exc}") from exc
        if response.status_code >= 400:
            raise EmailSendError(f"Email send failed: {response.status_code} {response.text[:200]}")
        message_id = response.json().get("id", "")
        logger.info("Email %s sent to %s recipient(s)", message_id, len(to))
        return message_id

    def close(self) -> None:
        self._client.close()
