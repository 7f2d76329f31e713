#!/usr/bin/env python3
# CUI // SP-PROPIN
"""Currency normalizer: free-form price text → canonical Price.

Vendor documents mix currencies and symbol placement ("Rs.1000", "₹ 5,000",
"$1,295.00", "850 EUR"). The normalizer records what the source states and
never converts between currencies. It never raises: unparseable input
yields a zero-value Price whose ``formatted`` is the original text.

Markers may precede or follow the amount ("Rs.: 1,500", "1000 Rs.").
Marker priority: rupee ("Rs", "Rs.", "₹", "rupees") → € → £ → ¥ → A$ → C$ → $,
then ISO codes (INR, EUR, ...), then a bare number (currency UNKNOWN).
"""

import logging
import math
import re
from typing import Any, Dict, Optional, Set

from procurement.rfx.models import Price, is_blank

logger = logging.getLogger("procurement.rfx.currency")

_NUM = r"(\d[\d,]*(?:\.\d+)?)"
# Punctuation allowed between a leading marker and its amount: "Rs.: 1,500", "(Rs.) 1,500"
_GAP = r"[ \t:()\-]*"

# code -> (display symbol, name)
CURRENCIES: Dict[str, tuple] = {
    "INR": ("₹", "Indian Rupees"),
    "EUR": ("€", "Euros"),
    "GBP": ("£", "British Pounds"),
    "JPY": ("¥", "Japanese Yen"),
    "AUD": ("A$", "Australian Dollars"),
    "CAD": ("C$", "Canadian Dollars"),
    "USD": ("$", "US Dollars"),
}

_ALIASES = {
    "RS": "INR", "RS.": "INR", "RUPEES": "INR", "RUPEE": "INR", "₹": "INR",
    "€": "EUR", "EURO": "EUR", "EUROS": "EUR",
    "£": "GBP", "POUNDS": "GBP",
    "¥": "JPY", "YEN": "JPY",
    "A$": "AUD", "C$": "CAD",
    "$": "USD", "US$": "USD", "DOLLARS": "USD",
}

# Rupee markers win over every other currency, before or after the amount.
_RUPEE_PATTERNS = [
    re.compile(r"\brs\.?" + _GAP + _NUM, re.IGNORECASE),
    re.compile(r"₹" + _GAP + _NUM),
    re.compile(_NUM + r"\s*(?:rs\b\.?|₹)", re.IGNORECASE),
]
_RUPEE_MARKER = re.compile(r"\brs\b\.?|₹|\brupees?\b", re.IGNORECASE)

# Remaining symbol markers in priority order; first match wins.
_SYMBOL_PATTERNS = [
    ("EUR", re.compile(r"€" + _GAP + _NUM)),
    ("EUR", re.compile(_NUM + r"\s*€")),
    ("GBP", re.compile(r"£" + _GAP + _NUM)),
    ("GBP", re.compile(_NUM + r"\s*£")),
    ("JPY", re.compile(r"¥" + _GAP + _NUM)),
    ("JPY", re.compile(_NUM + r"\s*¥")),
    ("AUD", re.compile(r"\bA\$" + _GAP + _NUM)),
    ("CAD", re.compile(r"\bC\$" + _GAP + _NUM)),
    ("USD", re.compile(r"(?<![AC])\$" + _GAP + _NUM)),
    ("USD", re.compile(_NUM + r"\s*\$(?!\s*\d)")),
]

_CODES = "|".join(CURRENCIES)
_CODE_PREFIX = re.compile(r"\b(" + _CODES + r")\.?\s*" + _NUM)
_CODE_SUFFIX = re.compile(_NUM + r"\s*(" + _CODES + r")\b")
_BARE_NUMBER = re.compile(_NUM)


def _finite(value: Any) -> Optional[float]:
    """Coerce to a finite non-negative float, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _BARE_NUMBER.search(value)
        if not match:
            return None
        try:
            number = float(match.group(1).replace(",", ""))
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return abs(number)


def group_digits(value: float) -> str:
    """Locale-style thousands grouping: 1000 → '1,000', 1295.5 → '1,295.50'."""
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def _priced(code: str, value: float, raw: str) -> Price:
    symbol, name = CURRENCIES[code]
    return Price(value=value, currency=code, currency_name=name, symbol=symbol,
                 formatted=f"{symbol}{group_digits(value)}", raw=raw)


def zero_price(raw: str = "") -> Price:
    """Display default for absent prices: $0, not an error."""
    return _priced("USD", 0.0, raw)


def _unparsed(raw: str) -> Price:
    return Price(value=0.0, currency="UNKNOWN", currency_name="Unknown Currency",
                 symbol="", formatted=raw or "0", raw=raw)


def _rupee_amount(text: str) -> Optional[float]:
    for pattern in _RUPEE_PATTERNS:
        match = pattern.search(text)
        if match:
            value = _finite(match.group(1))
            if value is not None:
                return value
    # Marker away from the amount ("Prices in Rs.", "Total (in rupees) 1,500")
    if _RUPEE_MARKER.search(text):
        return _finite(text)
    return None


def _from_text(text: str) -> Price:
    rupees = _rupee_amount(text)
    if rupees is not None:
        return _priced("INR", rupees, text)

    for code, pattern in _SYMBOL_PATTERNS:
        match = pattern.search(text)
        if match:
            value = _finite(match.group(1))
            if value is not None:
                return _priced(code, value, text)

    for pattern, code_group, num_group in ((_CODE_PREFIX, 1, 2), (_CODE_SUFFIX, 2, 1)):
        match = pattern.search(text)
        if match:
            value = _finite(match.group(num_group))
            if value is not None:
                return _priced(match.group(code_group).upper(), value, text)

    match = _BARE_NUMBER.search(text)
    if match:
        value = _finite(match.group(1))
        if value is not None:
            return Price(value=value, currency="UNKNOWN",
                         currency_name="Unknown Currency", symbol="",
                         formatted=match.group(1), raw=text)

    logger.debug("No price found in %r", text[:80])
    return _unparsed(text)


def _resolve_code(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    code = str(value).strip().upper()
    if code in CURRENCIES:
        return code
    return _ALIASES.get(code)


def _from_mapping(data: Dict[str, Any]) -> Price:
    """Coerce a structured price (e.g. from model output) field by field."""
    formatted = data.get("formatted")
    raw = data.get("raw")
    raw = str(raw) if not is_blank(raw) else (str(formatted) if not is_blank(formatted) else "")
    parsed = _from_text(str(formatted)) if not is_blank(formatted) else None

    value = _finite(data.get("value"))
    if value is None:
        value = parsed.value if parsed else 0.0

    code = _resolve_code(data.get("currency")) or _resolve_code(data.get("symbol"))
    if code is None and parsed is not None and parsed.currency in CURRENCIES:
        code = parsed.currency

    if code is None:
        display = str(formatted).strip() if not is_blank(formatted) else group_digits(value)
        return Price(value=value, currency="UNKNOWN", currency_name="Unknown Currency",
                     symbol="", formatted=display, raw=raw)

    symbol, name = CURRENCIES[code]
    display = str(formatted).strip() if not is_blank(formatted) else f"{symbol}{group_digits(value)}"
    return Price(value=value, currency=code, currency_name=name, symbol=symbol,
                 formatted=display, raw=raw)


def normalize_price(value: Any) -> Price:
    """Normalize a raw string, structured price, number or None into a Price.

    A ``Price`` instance is returned unchanged, so normalization is idempotent.
    """
    if isinstance(value, Price):
        return value
    try:
        if is_blank(value):
            return zero_price("" if value is None else str(value))
        if isinstance(value, dict):
            return _from_mapping(value)
        return _from_text(str(value).strip())
    except Exception as exc:
        logger.warning("Price normalization failed for %r: %s", value, exc)
        return _unparsed(str(value))


def currencies_in(text: str) -> Set[str]:
    """Every currency code ``text`` states for some amount.

    Rupee markers count wherever they appear, as long as the text holds a number.
    """
    found = set()
    if not text:
        return found
    if _rupee_amount(text) is not None:
        found.add("INR")
    for code, pattern in _SYMBOL_PATTERNS:
        if pattern.search(text):
            found.add(code)
    for match in _CODE_PREFIX.finditer(text):
        found.add(match.group(1).upper())
    for match in _CODE_SUFFIX.finditer(text):
        found.add(match.group(2).upper())
    return found


def reconcile_currency(price: Price, source_text: str) -> Price:
    """Repair a model-assigned currency against what the source document states.

    Models tend to rewrite "Rs.1000" as "$1000". When the source names exactly
    one currency and the model reported USD or nothing, keep the value and
    re-tag it with the source currency. The amount is never converted.
    """
    if price.value <= 0 or price.currency not in ("USD", "UNKNOWN"):
        return price
    stated = currencies_in(source_text)
    if len(stated) != 1:
        return price
    code = next(iter(stated))
    if code == price.currency:
        return price
    logger.warning("Model reported %s for %s but source states %s; re-tagging",
                   price.currency, price.formatted, code)
    return _priced(code, price.value, price.raw or price.formatted)


def currency_of(value: Any) -> Optional[str]:
    """Currency code stated by a price-like value, or None if not stated."""
    if is_blank(value):
        return None
    price = normalize_price(value)
    return price.currency if price.currency in CURRENCIES else None
