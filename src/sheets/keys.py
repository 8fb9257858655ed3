"""Identity key normalization.

Every comparison between a query identity and a stored row goes through
these functions, on both sides, so "+1 (555) 123-4567" written yesterday
matches "5551234567" typed today.
"""

import re
from typing import Optional

_NON_DIGIT = re.compile(r"\D")

# 10-digit US numbers with optional country code and common separators
_PHONE_PATTERN = re.compile(
    r"(?<![\d+])(?:\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}(?!\d)"
)

_CONTACT_KEYWORDS = ("contact", "phone")


def normalize_email(raw: Optional[str]) -> str:
    """Trim and lowercase an email address."""
    return (raw or "").strip().lower()


def normalize_phone(raw: Optional[str]) -> str:
    """Reduce a phone-like string to its comparison key.

    Non-digits are stripped. An 11-digit number with a leading ``1`` loses
    the country code; anything else is returned as the bare digit string,
    which may be empty.
    """
    digits = _NON_DIGIT.sub("", raw or "")
    if len(digits) == 11 and digits.startswith("1"):
        return digits[1:]
    return digits


def looks_like_contact(text: str) -> bool:
    """Heuristic: does this message carry (or talk about) a phone number?"""
    if _PHONE_PATTERN.search(text):
        return True
    lowered = text.lower()
    return any(word in lowered for word in _CONTACT_KEYWORDS)


def extract_contact_number(text: str) -> Optional[str]:
    """Return the normalized key of the first phone number in ``text``."""
    match = _PHONE_PATTERN.search(text)
    if not match:
        return None
    return normalize_phone(match.group(0))
