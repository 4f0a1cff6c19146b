"""Coerce raw extracted values into spreadsheet/document cell values."""

from __future__ import annotations

import math
import re
from decimal import Decimal, InvalidOperation
from typing import Any

CellValue = str | int | float

_STRIP_RE = re.compile(r"[$,\s]")
_NUMERIC_RE = re.compile(r"[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
# Beyond double range a numeric string is kept as text.
_MAX_ADJUSTED_EXPONENT = 308


def coerce_value(raw: Any) -> CellValue:
    """Return ``""`` for absent values, numbers for numeric text, else text.

    - None, ``""`` and non-finite floats collapse to ``""``.
    - int/float pass through unchanged; booleans become ``"true"``/``"false"``.
    - Strings lose ``$``, ``,`` and whitespace; a fully numeric residue is
      returned as int when whole, else float. Numeric text outside double
      range and other strings are returned as-is.

    Never raises.
    """

    if raw is None:
        return ""
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else ""
    if not isinstance(raw, str):
        return str(raw)
    if raw == "":
        return ""

    residue = _STRIP_RE.sub("", raw)
    if not residue or not _NUMERIC_RE.fullmatch(residue):
        return raw

    try:
        number = Decimal(residue)
    except InvalidOperation:
        return raw
    if not number:
        return 0
    if abs(number.adjusted()) > _MAX_ADJUSTED_EXPONENT:
        return raw
    if number == number.to_integral_value():
        return int(number)
    return float(number)


def value_to_text(value: Any) -> str:
    """Text form used to decide whether a coerced value is empty."""

    if value is None:
        return ""
    return str(value)
