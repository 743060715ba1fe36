"""
Shared utility functions for field-name normalization and date parsing.
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional, List
from dateutil import parser as dateparser


# Two unrelated defaults; a date parsing differently under each was incomplete
_DEFAULT_A = datetime(2000, 1, 1)
_DEFAULT_B = datetime(2001, 2, 2)


# Long 360Giving object names shortened to the spreadsheet column prefix
_PREFIX_ALIASES = [
    (re.compile(r"(^|_)recipient_organi[sz]ation(?=_|$)"), r"\1recipient_org"),
    (re.compile(r"(^|_)funding_organi[sz]ation(?=_|$)"), r"\1funding_org"),
]


def canonical_key(text: str) -> str:
    """
    Normalize a JSON key path or spreadsheet header to a snake_case field name.

    Steps, applied in order:
    1. camelCase boundaries get an underscore ("amountAwarded" → "amount_Awarded")
    2. lowercase
    3. each run of non-alphanumeric characters becomes one underscore,
       leading/trailing underscores are stripped
    4. "recipient_organization" → "recipient_org", "funding_organization" → "funding_org"
    5. a final "id" segment becomes "identifier"

    Both parsers use this, so JSON and spreadsheet sources line up.

    Examples:
        >>> canonical_key("Recipient Org:Identifier")
        'recipient_org_identifier'
        >>> canonical_key("recipientOrganization_id")
        'recipient_org_identifier'
        >>> canonical_key(" Amount Awarded ")
        'amount_awarded'
    """
    key = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", str(text))
    key = key.lower()
    key = re.sub(r"[^a-z0-9]+", "_", key).strip("_")
    for pattern, replacement in _PREFIX_ALIASES:
        key = pattern.sub(replacement, key)
    key = re.sub(r"(^|_)id$", r"\1identifier", key)
    return key


def dedupe_keys(keys: List[str]) -> List[str]:
    """
    Make keys unique by suffixing repeats with _2, _3, ...

    Examples:
        >>> dedupe_keys(["title", "title", "amount"])
        ['title', 'title_2', 'amount']
    """
    seen = {}
    result = []
    for key in keys:
        if key not in seen:
            seen[key] = 1
            result.append(key)
            continue
        seen[key] += 1
        candidate = f"{key}_{seen[key]}"
        while candidate in seen:
            seen[key] += 1
            candidate = f"{key}_{seen[key]}"
        seen[candidate] = 1
        result.append(candidate)
    return result


def parse_date_maybe(text: str) -> Optional[datetime]:
    """
    Attempt to parse a date string, returning None on failure.

    Uses dateutil.parser with day-first=True for UK date formats. Partial
    dates ("2019", "March 2019") return None rather than borrowing the
    missing day or month from today.

    Examples:
        >>> parse_date_maybe("10/04/2019")
        datetime.datetime(2019, 4, 10, 0, 0)
        >>> parse_date_maybe("not a date")
        None
    """
    text = text.strip()
    if not text:
        return None

    try:
        # ISO strings must not be read day-first
        if re.match(r"^\d{4}-\d{2}-\d{2}", text):
            return dateparser.isoparse(text)
        first = dateparser.parse(text, dayfirst=True, default=_DEFAULT_A)
        second = dateparser.parse(text, dayfirst=True, default=_DEFAULT_B)
    except (ValueError, TypeError, OverflowError):
        return None

    return first if first == second else None


def normalize_date(value: Any) -> Any:
    """
    Render a date-like value as an ISO-8601 string.

    Midnight datetimes collapse to a plain date. Unparseable strings are
    returned unchanged.
    """
    if isinstance(value, datetime):
        if value.time() == datetime.min.time() and value.tzinfo is None:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        parsed = parse_date_maybe(value)
        return normalize_date(parsed) if parsed else value
    return value


def clean_scalar(value: Any) -> Any:
    """
    Convert a raw cell value to a plain Python scalar.

    NaN, NaT and blank strings become None; strings are stripped; numpy and
    pandas scalars are unwrapped; timestamps become ISO strings.
    """
    if value is None:
        return None
    # pandas.Timestamp subclasses datetime; NaT does not compare equal to itself
    if isinstance(value, (datetime, date)):
        if value != value:
            return None
        return normalize_date(value)
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        try:
            value = value.item()
        except (ValueError, AttributeError):
            pass
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    if type(value).__name__ == "NaTType":
        return None
    return value
