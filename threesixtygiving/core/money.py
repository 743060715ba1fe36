"""
Money parsing utilities for grant amounts.

Publishers write amounts in many ways:
- 1234.5 (already numeric, usually from JSON or a typed spreadsheet cell)
- "£1,234.50" → 1234.5
- "GBP 5000" → 5000.0
- "1.234,50" → 1234.5 (continental separators)
- "(250)" → -250.0
- "N/A" → None (caller records a warning; never treated as zero)
"""

import math
import re
from typing import Any, Optional


# Symbols and ISO codes stripped before numeric parsing; codes may touch the digits ("GBP5000")
_CURRENCY_SYMBOLS = "£$€¥₹"
_CURRENCY_CODES = re.compile(r"(?<![A-Za-z])(GBP|USD|EUR|CAD|CHF|AUD|NZD)(?![A-Za-z])", re.IGNORECASE)

# Accepted digit layouts, checked in order
_PLAIN = re.compile(r"^\d+(?:\.\d+)?$")                   # 1234.50
_COMMA_GROUPED = re.compile(r"^\d{1,3}(?:,\d{3})+(?:\.\d+)?$")  # 1,234.50
_DOT_GROUPED = re.compile(r"^\d{1,3}(?:\.\d{3})+(?:,\d+)?$")    # 1.234,50
_DECIMAL_COMMA = re.compile(r"^\d+,\d{1,2}$")              # 1234,5


def parse_amount(value: Any) -> Optional[float]:
    """
    Coerce a monetary value to a float.

    Examples:
        "£1,234.50" → 1234.5
        "1.234,50" → 1234.5
        "  12 000 " → 12000.0
        "(250.00)" → -250.0
        "N/A" → None
        "" → None

    Separators that fit neither the UK nor the continental layout ("1,2,3",
    "1.234.5") give None instead of a guess.

    Args:
        value: Raw cell or JSON value

    Returns:
        Parsed amount, or None if the value is empty or not numeric
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return float(value)

    text = str(value).strip()
    if not text:
        return None

    # Accounting-style negatives
    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    text = _CURRENCY_CODES.sub("", text)
    for symbol in _CURRENCY_SYMBOLS:
        text = text.replace(symbol, "")
    text = re.sub(r"\s", "", text)

    if text.startswith("-"):
        negative = not negative
        text = text[1:]

    digits = _to_plain_number(text)
    if digits is None:
        return None

    amount = float(digits)
    return -amount if negative else amount


def _to_plain_number(text: str) -> Optional[str]:
    if _PLAIN.match(text):
        return text
    if _COMMA_GROUPED.match(text):
        return text.replace(",", "")
    if _DOT_GROUPED.match(text):
        return text.replace(".", "").replace(",", ".")
    if _DECIMAL_COMMA.match(text):
        return text.replace(",", ".")
    return None
