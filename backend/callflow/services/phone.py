"""Phone number normalisation and caller identity resolution."""
import logging
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

PLACEHOLDER_NUMBERS = frozenset({"", "unknown", "anonymous", "restricted", "private"})


def digits_only(value: Optional[str]) -> str:
    if not value:
        return ""
    return "".join(char for char in value if char.isdigit())


def is_placeholder_number(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in PLACEHOLDER_NUMBERS


def is_dialable(value: Optional[str]) -> bool:
    """False for softphone clients, SIP identities and withheld numbers."""
    if is_placeholder_number(value):
        return False
    if value.startswith("client:") or value.startswith("sip:"):
        return False
    return bool(digits_only(value))


def normalize_phone(value: Optional[str]) -> Optional[str]:
    """Canonical 10-digit NANP form when possible, bare digits otherwise."""
    if not is_dialable(value):
        return None
    digits = digits_only(value)
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def build_phone_variants(value: Optional[str]) -> List[str]:
    if not is_dialable(value):
        return []
    digits = digits_only(value)
    variants = {digits, value.strip()}
    if len(digits) == 11 and digits.startswith("1"):
        national = digits[1:]
        variants.update({national, f"+{digits}", format_phone(national)})
    if len(digits) == 10:
        variants.update({f"1{digits}", f"+1{digits}", format_phone(digits)})
    return sorted(variants, key=len, reverse=True)


def to_e164(value: Optional[str]) -> Optional[str]:
    if not is_dialable(value):
        return None
    if value.strip().startswith("+"):
        return "+" + digits_only(value)
    digits = digits_only(value)
    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return f"+{digits}"


def format_phone(value: Optional[str]) -> str:
    if not value:
        return "Unknown caller"
    if is_placeholder_number(value):
        return "Unknown caller"
    digits = digits_only(value)
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    return value


@dataclass(frozen=True)
class CallerIdentity:
    contact_id: Optional[int]
    display_name: Optional[str]
    created: bool = False


def resolve_caller(directory, phone: Optional[str], fallback_name: Optional[str] = None) -> Optional[CallerIdentity]:
    """Look the caller up in the contact directory, creating an unknown contact if needed.

    Directory failures are logged and yield None so the call is still recorded.
    """
    if not is_dialable(phone):
        return None
    try:
        match = directory.lookup_by_phone(phone)
        if match:
            return CallerIdentity(contact_id=match.id, display_name=match.display_name)
        contact_id = directory.create_unknown(phone, display_name=fallback_name)
        return CallerIdentity(contact_id=contact_id, display_name=fallback_name, created=True)
    except Exception:
        logger.warning("Caller lookup failed for %s", phone, exc_info=True)
        return None
