"""Shared validation utilities"""

import re
from typing import Any, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# 0 or +61/61, an area/mobile prefix of 2, 3, 4, 7 or 8, then eight digits
# with optional space or dash separators
AU_PHONE_PATTERN = re.compile(r"^(\+?61|0)[2-478](?:[ -]?[0-9]){8}$")


def validate_email(email: Optional[str]) -> str:
    """
    Validate email format.

    Returns:
        Stripped email address

    Raises:
        ValueError: If email is missing or its format is invalid
    """
    if not email or not isinstance(email, str):
        raise ValueError("Email is required")

    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email format")

    return email


def validate_au_phone(phone: Optional[str]) -> str:
    """
    Validate an Australian mobile or landline number.

    Whitespace is ignored; dashes are accepted between digits.

    Returns:
        Phone number with whitespace removed

    Raises:
        ValueError: If phone number is missing or invalid
    """
    if not phone or not isinstance(phone, str):
        raise ValueError("Phone number is required")

    compact = re.sub(r"\s", "", phone)
    if not AU_PHONE_PATTERN.match(compact):
        raise ValueError("Invalid Australian phone number")

    return compact


def validate_min_length(value: Any, min_length: int, field_name: str = "Value") -> str:
    """Require a string of at least ``min_length`` characters after trimming"""
    if not isinstance(value, str) or len(value.strip()) < min_length:
        raise ValueError(f"{field_name} must be at least {min_length} characters")
    return value.strip()


def is_valid_email(email: Any) -> bool:
    try:
        validate_email(email)
        return True
    except ValueError:
        return False


def is_valid_au_phone(phone: Any) -> bool:
    try:
        validate_au_phone(phone)
        return True
    except ValueError:
        return False


def to_e164_au(phone: str) -> str:
    """Normalize a valid Australian number to E.164 (+61XXXXXXXXX)"""
    digits = re.sub(r"\D", "", validate_au_phone(phone))
    if digits.startswith("61"):
        digits = digits[2:]
    elif digits.startswith("0"):
        digits = digits[1:]
    return f"+61{digits}"
