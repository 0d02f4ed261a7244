"""
National identifier (CPF) helpers.

An identifier is 11 digits whose last two are mod-11 check digits over the
preceding nine and ten digits. Sequences of one repeated digit pass the
arithmetic but are never issued, so they are rejected too.
"""

import re
from typing import Optional

NON_DIGIT_RE = re.compile(r"\D")

IDENTIFIER_LENGTH = 11


def clean_identifier(value: Optional[str]) -> str:
    """Strip everything but digits"""
    if not value:
        return ""
    return NON_DIGIT_RE.sub("", str(value))


def _check_digit(digits: str, length: int) -> int:
    total = sum(int(digits[i]) * (length + 1 - i) for i in range(length))
    remainder = (total * 10) % 11
    return 0 if remainder == 10 else remainder


def is_valid_identifier(value: Optional[str]) -> bool:
    digits = clean_identifier(value)
    if len(digits) != IDENTIFIER_LENGTH:
        return False
    if digits == digits[0] * IDENTIFIER_LENGTH:
        return False
    if _check_digit(digits, 9) != int(digits[9]):
        return False
    return _check_digit(digits, 10) == int(digits[10])


def has_identifier_shape(value: Optional[str]) -> bool:
    """11 digits after cleaning, check digits not verified"""
    return len(clean_identifier(value)) == IDENTIFIER_LENGTH


def format_identifier(value: Optional[str]) -> str:
    """000.000.000-00 presentation; input returned unchanged if not 11 digits"""
    digits = clean_identifier(value)
    if len(digits) != IDENTIFIER_LENGTH:
        return value or ""
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"
