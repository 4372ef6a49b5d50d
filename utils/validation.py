"""
Input validation utilities for client details and booking inputs.
"""

import re
from datetime import date
from typing import Optional

# Postcode formats per locale (whitespace is stripped and letters upper-cased first)
POSTCODE_PATTERNS = {
    "GB": r"^[A-Z]{1,2}\d[A-Z\d]?\d[A-Z]{2}$",
    "IE": r"^[A-Z]\d[\dW][A-Z\d]{4}$",
    "US": r"^\d{5}(-\d{4})?$",
    "CZ": r"^\d{5}$",
}

MAX_AGE_YEARS = 120


def validate_email(email: str) -> bool:
    """
    Validate email address format.

    Args:
        email: Email address string

    Returns:
        True if valid format, False otherwise
    """
    if not email or not isinstance(email, str):
        return False

    if len(email) > 254:
        return False

    # Basic email regex (RFC 5322 simplified)
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return bool(re.match(pattern, email))


def validate_name(name: str) -> bool:
    """
    Validate a person's name: letters (any script), spaces, hyphens,
    apostrophes and dots, 2 to 100 characters.
    """
    if not name or not isinstance(name, str):
        return False

    cleaned = name.strip()
    if not 2 <= len(cleaned) <= 100:
        return False

    return all(ch.isalpha() or ch in " -'." for ch in cleaned)


def validate_phone(phone: str) -> bool:
    """
    Check that a phone number is present.

    Format rules are locale specific and are not enforced here.
    """
    return isinstance(phone, str) and bool(phone.strip())


def validate_postcode(postcode: str, locale: str = "GB") -> bool:
    """
    Validate postcode against the locale's pattern.

    Args:
        postcode: Postcode string
        locale: ISO country code (GB, IE, US, CZ)

    Returns:
        True if valid format, False otherwise

    Raises:
        ValueError: If the locale has no known postcode pattern
    """
    if not postcode or not isinstance(postcode, str):
        return False

    pattern = POSTCODE_PATTERNS.get(locale.upper())
    if pattern is None:
        raise ValueError(f"No postcode pattern for locale '{locale}'")

    cleaned = re.sub(r'\s+', '', postcode).upper()
    return bool(re.match(pattern, cleaned))


def validate_date_of_birth(value: Optional[date], today: date) -> bool:
    """
    Validate a date of birth: not in the future and at most 120 years ago.
    """
    if value is None:
        return False

    try:
        earliest = today.replace(year=today.year - MAX_AGE_YEARS)
    except ValueError:
        # 29 February
        earliest = today.replace(year=today.year - MAX_AGE_YEARS, day=28)

    return earliest <= value <= today


def sanitize_text(text: str, max_length: Optional[int] = None) -> str:
    """
    Sanitize user input text.

    Args:
        text: Input text
        max_length: Optional maximum length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove control characters except newlines and tabs
    sanitized = re.sub(r'[\x00-\x08\x0B-\x0C\x0E-\x1F\x7F]', '', str(text))

    # Drop angle brackets so notes cannot carry markup
    sanitized = re.sub(r'[<>]', '', sanitized)

    # Trim whitespace
    sanitized = sanitized.strip()

    # Apply length limit if specified
    if max_length and len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized
