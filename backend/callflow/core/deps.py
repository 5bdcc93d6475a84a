import logging
from typing import Dict, Optional

from fastapi import Depends, HTTPException, Request, status

from callflow.core.config import Settings, get_settings
from callflow.core.signature import SIGNATURE_HEADER, SignatureVerifier
from callflow.schemas import CallbackKind, MalformedCallback, ProviderCallback, decode_callback

logger = logging.getLogger(__name__)


async def get_form(request: Request) -> Dict[str, str]:
    form = await request.form()
    return {key: value for key, value in form.items() if isinstance(value, str)}


async def verify_signature(
    request: Request,
    form: Dict[str, str] = Depends(get_form),
    settings: Settings = Depends(get_settings),
) -> None:
    verifier = SignatureVerifier(settings.twilio_auth_token, settings.public_base_url)
    url = verifier.reconstruct_url(str(request.url), request.url.path, request.url.query)
    signature = request.headers.get(SIGNATURE_HEADER)
    if not verifier.is_valid(request.method, url, form, signature):
        logger.warning("Invalid signature for %s %s", request.method, request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def decode_or_none(kind: CallbackKind, form: Dict[str, str], mailbox: Optional[str] = None) -> Optional[ProviderCallback]:
    try:
        return decode_callback(kind, form, mailbox)
    except MalformedCallback as exc:
        logger.warning("%s", exc)
        return None
