"""Verifies that a webhook really came from the provider."""
import logging
from typing import Mapping, Optional

from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Twilio-Signature"


class SignatureVerifier:
    def __init__(self, auth_token: Optional[str], public_base_url: Optional[str] = None) -> None:
        self.auth_token = auth_token
        self.public_base_url = (public_base_url or "").rstrip("/") or None
        self._validator = RequestValidator(auth_token) if auth_token else None

    def reconstruct_url(self, request_url: str, path: str, query: str = "") -> str:
        """The URL the provider signed, as seen from outside any reverse proxy."""
        if not self.public_base_url:
            return request_url
        url = f"{self.public_base_url}{path}"
        return f"{url}?{query}" if query else url

    def is_valid(self, method: str, url: str, params: Mapping[str, str], signature: Optional[str]) -> bool:
        if self._validator is None:
            logger.warning("TWILIO_AUTH_TOKEN not set; skipping signature validation for %s %s", method, url)
            return True
        if not signature:
            return False
        try:
            return self._validator.validate(url, dict(params), signature)
        except (TypeError, ValueError, AttributeError):
            logger.warning("Malformed signed request for %s %s", method, url, exc_info=True)
            return False
