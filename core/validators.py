from rest_framework import serializers
import re

KENYA_COUNTRY_CODE = "254"

# Characters customers type around a number: spaces, hyphens, plus signs, parentheses
_PHONE_NOISE_RE = re.compile(r"[\s\-\+\(\)]")
_LOCAL_MOBILE_RE = re.compile(r"^[17]\d{8}$")
_PHONE_RE = re.compile(r"^254[17]\d{8}$")


def normalize_phone_number(phone: str) -> str:
    """
    Canonicalize a local or international Kenyan number into the digits-only
    international form the M-Pesa gateway expects (e.g. 254712345678).

    Never raises: whatever cannot be normalized comes back cleaned but
    unvalidated, use is_valid_kenyan_phone() before any network call.
    """
    cleaned = _PHONE_NOISE_RE.sub("", str(phone or ""))
    if cleaned.startswith("0"):
        cleaned = KENYA_COUNTRY_CODE + cleaned[1:]
    if _LOCAL_MOBILE_RE.match(cleaned):
        cleaned = KENYA_COUNTRY_CODE + cleaned
    return cleaned


def is_valid_kenyan_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(normalize_phone_number(phone)))


def format_phone_display(phone: str) -> str:
    """Render as '+254 712 345 678'; anything that does not normalize to 12 digits is returned as given."""
    normalized = normalize_phone_number(phone)
    if len(normalized) == 12:
        return f"+{normalized[:3]} {normalized[3:6]} {normalized[6:9]} {normalized[9:]}"
    return phone


def validate_kenyan_phone(value: str) -> None:
    if value and not is_valid_kenyan_phone(value):
        raise serializers.ValidationError("Invalid Kenyan phone number")
    return None
