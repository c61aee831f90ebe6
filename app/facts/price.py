"""
Price token extraction, normalization and display formatting.
"""

from __future__ import annotations

import math
import re

PRICE_TOKEN_REGEX = re.compile(r"([€$£¥]\s?\d[\d.,]*)|(\d[\d.,]*\s?[€$£¥])")
_STRIP_REGEX = re.compile(r"[€$£¥\s ]")
_NUMBER_REGEX = re.compile(r"-?\d+(?:\.\d+)?")
_TRAILING_DIGITS_REGEX = re.compile(r"^(\d+)")

CURRENCY_SYMBOLS: dict[str, str] = {
    "EUR": "€",
    "USD": "$",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
}
_SYMBOL_TO_CURRENCY: dict[str, str] = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
    "¥": "JPY",
}


def normalize_price(text: str | None) -> float | None:
    """
    Parse a displayed price into a float.

    Rules
    -----
    - Currency symbols and whitespace are stripped.
    - Both ``,`` and ``.`` present: the right-most one is the decimal
      separator, the other a thousands separator.
    - Only ``,`` present: decimal when exactly two digits follow the last
      comma, thousands separator otherwise.
    - Anything that does not parse to a finite number yields ``None``.

    Examples: ``"€49,00" -> 49.0``, ``"$1,999.00" -> 1999.0``,
    ``"1.234,56" -> 1234.56``, ``"1,234.56" -> 1234.56``.
    """

    if not isinstance(text, str):
        return None

    cleaned = _STRIP_REGEX.sub("", text)
    if not any(char.isdigit() for char in cleaned):
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma:
        head, _, tail = cleaned.rpartition(",")
        digits = _TRAILING_DIGITS_REGEX.match(tail)
        if digits is not None and len(digits.group(1)) == 2 and "," not in head:
            cleaned = f"{head}.{tail}"
        else:
            cleaned = cleaned.replace(",", "")

    match = _NUMBER_REGEX.search(cleaned)
    if match is None:
        return None
    try:
        value = float(match.group(0))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def extract_price_token(text: str | None) -> str | None:
    """
    Return the first ``<symbol><amount>`` or ``<amount><symbol>`` token in ``text``.
    """

    if not text:
        return None
    match = PRICE_TOKEN_REGEX.search(text)
    if match is None:
        return None
    token = (match.group(1) or match.group(2) or "").strip()
    return token or None


def currency_from_token(token: str | None) -> str | None:
    if not token:
        return None
    for symbol, code in _SYMBOL_TO_CURRENCY.items():
        if symbol in token:
            return code
    return None


def format_price(value: float, currency: str | None) -> str:
    """
    Format a structured-data price for display.

    EUR (and unknown currency) use a comma decimal with a trailing symbol,
    other known currencies a leading symbol.
    """

    code = (currency or "").upper() or None
    if code is None or code == "EUR":
        return f"{value:.2f}".replace(".", ",") + " €"
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{value:.2f} {code}"
    return f"{symbol}{value:.2f}"
