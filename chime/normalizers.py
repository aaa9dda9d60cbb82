"""
Identifier normalization.

Canonicalizes phone numbers and email addresses into comparison keys so the
same participant matches across chat.db, the contacts directory and the
system AddressBook.

Design Decisions:
    1. Contains @ → email: stripped, lowercased
    2. Otherwise phone: digits and + only, US country code folded away
    3. Normalization never raises; empty input gives an empty key

Phone Normalization Strategy:
    - Remove everything except digits and +
    - 11 digits starting with 1 → drop the 1
    - +1 followed by 10 digits → drop the +1
    - Other international numbers keep their + prefix
"""

import re
from typing import Literal, Optional

IdentifierType = Literal["phone", "email", "unknown"]

NON_PHONE_CHARS_PATTERN = re.compile(r"[^0-9+]")
NON_DIGIT_PATTERN = re.compile(r"\D")


def clean_phone(raw: Optional[str]) -> str:
    """
    Keep only digits and + characters.

    Unlike normalize_phone, the country code is left untouched. This is the
    form handed to Contacts.app lookups and used for lenient matching.

    Examples:
        >>> clean_phone("+1 (415) 555-1234")
        '+14155551234'
    """
    if not raw:
        return ""
    return NON_PHONE_CHARS_PATTERN.sub("", raw)


def normalize_phone(raw: Optional[str]) -> str:
    """
    Normalize a phone number to its comparison key.

    Args:
        raw: Phone number in any format.

    Returns:
        Digits (with any leading + kept), US country code dropped.

    Examples:
        >>> normalize_phone("+1 (555) 123-4567")
        '5551234567'
        >>> normalize_phone("15551234567")
        '5551234567'
        >>> normalize_phone("+44 20 7946 0958")
        '+442079460958'
    """
    result = clean_phone(raw)

    if result.startswith("1") and len(result) == 11:
        result = result[1:]
    if result.startswith("+1") and len(result) == 12:
        result = result[2:]

    return result


def normalize_email(raw: Optional[str]) -> str:
    """
    Normalize an email address: strip whitespace and lowercase.

    Examples:
        >>> normalize_email("  USER@Example.com ")
        'user@example.com'
    """
    if not raw:
        return ""
    return raw.strip().lower()


def normalize_identifier(raw: Optional[str]) -> str:
    """
    Normalize a phone number or email to its canonical comparison key.

    Examples:
        >>> normalize_identifier("USER@Example.com")
        'user@example.com'
        >>> normalize_identifier("555-123-0000")
        '5551230000'
        >>> normalize_identifier("")
        ''
    """
    if not raw:
        return ""
    if "@" in raw:
        return normalize_email(raw)
    return normalize_phone(raw)


def detect_identifier_type(value: Optional[str]) -> IdentifierType:
    """
    Guess whether an identifier is a phone number or an email address.

    Examples:
        >>> detect_identifier_type("user@example.com")
        'email'
        >>> detect_identifier_type("(415) 555-1234")
        'phone'
        >>> detect_identifier_type("chat123456")
        'unknown'
    """
    if not value or not value.strip():
        return "unknown"

    if "@" in value:
        return "email"

    digits = NON_DIGIT_PATTERN.sub("", value)
    letters = sum(1 for ch in value if ch.isalpha())
    if digits and letters == 0:
        return "phone"

    return "unknown"


def phones_match_leniently(a: Optional[str], b: Optional[str]) -> bool:
    """
    Compare two phone numbers by substring containment in either direction.

    Absorbs national vs international formats ("5551234567" inside
    "+15551234567"). Short numbers can produce false positives.
    """
    cleaned_a = clean_phone(a)
    cleaned_b = clean_phone(b)
    if not cleaned_a or not cleaned_b:
        return False
    return cleaned_a in cleaned_b or cleaned_b in cleaned_a
