"""
Locale-tolerant number coercion for spreadsheet cells.

Handles values typed by hand in CSV/XLSX exports:
- "49,99"      → 49.99   (comma decimal separator)
- "1.234,56"   → 1234.56 (dot thousands, comma decimals)
- "1 234.56 ₴" → 1234.56 (spaces and currency symbols stripped)
- "abc"        → None    (never raises)
"""

import math
import re
from typing import Any, Optional

# Currency markers stripped before parsing. Letters outside this list are
# kept so that text like "abc" stays unparseable instead of becoming empty.
_CURRENCY_RE = re.compile(r"(?i)(uah|usd|eur|грн\.?|руб\.?|[$€£¥₴₽₸])")
_SPACES_RE = re.compile(r"[\s   ']+")
_NUMBER_RE = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")


def coerce_number(value: Any) -> Optional[float]:
    """
    Convert a raw cell value to a finite float.

    Args:
        value: Raw value (str, int, float, None)

    Returns:
        Finite float, or None if the value is empty or not a number
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if not text:
        return None

    text = _CURRENCY_RE.sub("", text)
    text = _SPACES_RE.sub("", text)
    if not text:
        return None

    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif "," in text:
        if text.count(",") > 1:
            return None
        text = text.replace(",", ".")

    if not _NUMBER_RE.match(text):
        return None

    number = float(text)
    return number if math.isfinite(number) else None


def coerce_int(value: Any) -> Optional[int]:
    """Coerce to int (truncating), or None if not a finite number."""
    number = coerce_number(value)
    if number is None:
        return None
    return int(number)


def is_positive_number(value: Any) -> bool:
    """True for finite numbers strictly greater than zero."""
    if value is None or isinstance(value, bool):
        return False
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and number > 0
