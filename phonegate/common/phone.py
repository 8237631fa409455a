import re
from typing import Optional
from phonegate.common.custom_exceptions import PhoneInvalid

# + followed by 9-15 digits
E164_PATTERN = re.compile(r"^\+[0-9]{9,15}$")

_SEPARATORS = re.compile(r"[\s\-().]")


def is_valid_e164(value: Optional[str]) -> bool:
    return value is not None and E164_PATTERN.fullmatch(value) is not None


def normalize_to_e164(raw: Optional[str]) -> str:
    """
    Strip whitespace, hyphens, parentheses and dots, then require strict E.164.
    No country code is ever inferred.
    """
    if raw is None or not raw.strip():
        raise PhoneInvalid("Phone required")
    cleaned = _SEPARATORS.sub("", raw)
    if not is_valid_e164(cleaned):
        raise PhoneInvalid("Phone must be E.164 (e.g., +14155552671)")
    return cleaned


def mask_phone(phone: Optional[str]) -> str:
    """+14155552671 -> +1*******71"""
    if phone is None or len(phone) < 4:
        return "***"
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]
