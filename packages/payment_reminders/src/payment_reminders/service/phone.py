"""
Phone number helpers for WhatsApp addressing.
"""

import re

WHATSAPP_PREFIX = "whatsapp:"

_SEPARATORS = re.compile(r"[\s\-().]")
_E164 = re.compile(r"^\+[1-9]\d{7,14}$")
_NATIONAL = re.compile(r"^[1-9]\d{9}$")


def normalize_phone(phone: str | None, default_country_code: str = "91") -> str | None:
    """
    Normalize a phone number to E.164, or return None if it is not usable.

    Accepts +<cc><number>, 00<cc><number>, <cc><10 digits>, 0<10 digits>
    and bare 10-digit national numbers (prefixed with default_country_code).
    """
    if not phone or not isinstance(phone, str):
        return None

    cleaned = _SEPARATORS.sub("", extract_phone_number(phone.strip()))
    if not cleaned:
        return None

    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]

    if cleaned.startswith("+"):
        return cleaned if _E164.match(cleaned) else None

    if not cleaned.isdigit():
        return None

    if len(cleaned) == 11 and cleaned.startswith("0"):
        cleaned = cleaned[1:]

    if _NATIONAL.match(cleaned):
        return f"+{default_country_code}{cleaned}"

    if cleaned.startswith(default_country_code) and len(cleaned) == len(default_country_code) + 10:
        return f"+{cleaned}"

    return None


def is_valid_phone(phone: str | None, default_country_code: str = "91") -> bool:
    """Check if a phone number is usable without raising."""
    return normalize_phone(phone, default_country_code) is not None


def format_phone_for_whatsapp(phone: str, default_country_code: str = "91") -> str:
    """
    Format a phone number as a WhatsApp address (whatsapp:+919876543210).

    Raises:
        ValueError: if the number is not valid
    """
    normalized = normalize_phone(phone, default_country_code)
    if normalized is None:
        raise ValueError(f"Invalid phone number format: {phone}")
    return f"{WHATSAPP_PREFIX}{normalized}"


def extract_phone_number(whatsapp_phone: str) -> str:
    """Strip the whatsapp: prefix."""
    if whatsapp_phone.startswith(WHATSAPP_PREFIX):
        return whatsapp_phone[len(WHATSAPP_PREFIX):]
    return whatsapp_phone
