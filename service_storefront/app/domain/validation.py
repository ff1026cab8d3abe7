"""
Field validation for addresses and contact details.

Each validator returns the cleaned value or raises ``ValidationError`` with a
message suitable for showing to the shopper.
"""

import re
from typing import Optional

from shared.errors import ValidationError

_ADDRESS_RE = re.compile(r"^[a-zA-Z0-9\s.,#-]+$")
_CITY_RE = re.compile(r"^[a-zA-Z\s\-']+$")
_STATE_RE = re.compile(r"^[a-zA-Z\s\-]+$")
_NAME_RE = re.compile(r"^[a-zA-Z\s\-'.]+$")
_REPEATED_DIGIT_RE = re.compile(r"^(\d)\1+$")

_POSTAL_PATTERNS = {
    "india": (re.compile(r"^\d{6}$"), "Please enter a valid Indian PIN code (6 digits)"),
    "united states": (re.compile(r"^\d{5}(-\d{4})?$"), "Please enter a valid US ZIP code (12345 or 12345-6789)"),
    "united kingdom": (re.compile(r"^[A-Z]{1,2}\d[A-Z\d]?\s?\d[A-Z]{2}$"), "Please enter a valid UK postal code"),
    "canada": (re.compile(r"^[A-Z]\d[A-Z]\s?\d[A-Z]\d$"), "Please enter a valid Canadian postal code"),
}
_COUNTRY_ALIASES = {"in": "india", "us": "united states", "uk": "united kingdom", "ca": "canada"}
_GENERIC_POSTAL = (re.compile(r"^[A-Z0-9\s-]{3,10}$"), "Please enter a valid postal code")


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """Phone is optional; 10-digit Indian mobiles or 7-15 digit international numbers."""
    if not phone or not phone.strip():
        return None
    digits = re.sub(r"\D", "", phone)

    if len(digits) == 10:
        if _REPEATED_DIGIT_RE.match(digits):
            raise ValidationError("Phone number cannot be all the same digits")
        if digits[0] not in "6789":
            raise ValidationError("Indian mobile numbers must start with 6, 7, 8, or 9")
        return phone.strip()

    if 7 <= len(digits) <= 15:
        if _REPEATED_DIGIT_RE.match(digits):
            raise ValidationError("Phone number cannot be all the same digits")
        if len(digits) > 10 and not digits.startswith(("1", "91")):
            raise ValidationError("Invalid international phone number format")
        return phone.strip()

    raise ValidationError("Phone number must be 10 digits (Indian) or 7-15 digits (international)")


def validate_full_name(name: Optional[str]) -> Optional[str]:
    if not name or not name.strip():
        return None
    name = name.strip()
    _check_length(name, 2, 100, "Name")
    if not _NAME_RE.match(name):
        raise ValidationError("Name can only contain letters, spaces, hyphens, apostrophes, and periods")
    return name


def validate_address_line(address: Optional[str]) -> str:
    if not address or not address.strip():
        raise ValidationError("Address is required")
    address = address.strip()
    if len(address) < 5:
        raise ValidationError("Address must be at least 5 characters long")
    if len(address) > 200:
        raise ValidationError("Address must be less than 200 characters")
    if not _ADDRESS_RE.match(address):
        raise ValidationError("Address contains invalid characters")
    return address


def validate_city(city: Optional[str]) -> str:
    if not city or not city.strip():
        raise ValidationError("City is required")
    city = city.strip()
    _check_length(city, 2, 100, "City")
    if not _CITY_RE.match(city):
        raise ValidationError("City can only contain letters, spaces, hyphens, and apostrophes")
    return city


def validate_state(state: Optional[str]) -> str:
    if not state or not state.strip():
        raise ValidationError("State is required")
    state = state.strip()
    _check_length(state, 2, 100, "State")
    if not _STATE_RE.match(state):
        raise ValidationError("State can only contain letters, spaces, and hyphens")
    return state


def validate_postal_code(postal_code: Optional[str], country: str = "India") -> str:
    if not postal_code or not postal_code.strip():
        raise ValidationError("Postal code is required")
    cleaned = postal_code.strip().upper()
    country_key = country.strip().lower()
    country_key = _COUNTRY_ALIASES.get(country_key, country_key)
    pattern, message = _POSTAL_PATTERNS.get(country_key, _GENERIC_POSTAL)
    if not pattern.match(cleaned):
        raise ValidationError(message)
    return cleaned


def _check_length(value: str, minimum: int, maximum: int, label: str) -> None:
    if len(value) < minimum:
        raise ValidationError(f"{label} must be at least {minimum} characters long")
    if len(value) > maximum:
        raise ValidationError(f"{label} must be less than {maximum} characters")
