"""Deterministic masking of protected personal fields.

The output of these functions is consumed by existing screens and exports,
so the bullet counts and the kept characters must not change.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

BULLET = "•"

EMAIL_TOKEN = BULLET * 4
PHONE_TOKEN = BULLET * 4
STREET_TOKEN = BULLET * 5
PINCODE_TOKEN = BULLET * 6
LANDMARK_TOKEN = BULLET * 5
DATE_OF_BIRTH_TOKEN = f"{BULLET * 2}/{BULLET * 2}/{BULLET * 4}"
PASSWORD_TOKEN = BULLET * 16


class ProtectedField(str, Enum):
    """Fields that can be masked and gated behind step-up authentication."""

    EMAIL = "email"
    PHONE = "phone"
    ADDRESS = "address"
    DATE_OF_BIRTH = "date_of_birth"
    PASSWORD = "password"


def mask_email(address: str | None) -> str:
    """Mask the local part of an email address.

    >>> mask_email("rajesh.sharma@gmail.com")
    'r••••a@gmail.com'
    """
    if not address:
        return ""
    parts = address.split("@")
    user = parts[0]
    domain = parts[1] if len(parts) > 1 else ""
    if not user or not domain:
        return address
    if len(user) <= 2:
        return f"{EMAIL_TOKEN}@{domain}"
    return f"{user[0]}{EMAIL_TOKEN}{user[-1]}@{domain}"


def mask_phone(digits: str | int | None) -> str:
    """Keep the first and last two characters of a phone number."""
    if digits is None or digits == "":
        return ""
    text = str(digits)
    if len(text) <= 4:
        return PHONE_TOKEN
    return f"{text[:2]}{PHONE_TOKEN}{text[-2:]}"


def mask_address(address: dict[str, Any] | None) -> dict[str, str]:
    """Mask street, pincode and landmark; city and state pass through."""
    if not address:
        return {}
    street = address.get("street") or ""
    return {
        "street": f"{street[0]}{STREET_TOKEN}{street[-2:]}" if street else "",
        "city": address.get("city") or "",
        "state": address.get("state") or "",
        "pincode": PINCODE_TOKEN if address.get("pincode") else "",
        "landmark": LANDMARK_TOKEN if address.get("landmark") else "",
    }


def mask_date_of_birth(value: str | None) -> str:
    """Hide the day of a DD/MM/YYYY date, keep month and year."""
    if not value:
        return ""
    parts = value.split("/")
    if len(parts) == 3:
        return f"{BULLET * 2}/{parts[1]}/{parts[2]}"
    return DATE_OF_BIRTH_TOKEN


def mask_password(value: str | None) -> str:
    return PASSWORD_TOKEN


_MASKERS = {
    ProtectedField.EMAIL: mask_email,
    ProtectedField.PHONE: mask_phone,
    ProtectedField.ADDRESS: mask_address,
    ProtectedField.DATE_OF_BIRTH: mask_date_of_birth,
    ProtectedField.PASSWORD: mask_password,
}


def mask_value(field: ProtectedField, value: Any) -> Any:
    """Dispatch to the masking function for ``field``."""
    return _MASKERS[field](value)
