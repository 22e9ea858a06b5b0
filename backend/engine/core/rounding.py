"""Numeric helpers: fixed-precision rounding and raw user input parsing."""

from __future__ import annotations

import math
import re
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Any

from engine.config import DECIMALS

_QUANTUM = Decimal(1).scaleb(-DECIMALS)

# Wide enough for every finite double (309 integer digits) plus the decimals.
_CONTEXT = Context(prec=320 + DECIMALS, rounding=ROUND_HALF_UP)

# Plain decimal notation with optional sign and exponent. No digit
# separators, hex, or textual infinities.
_NUMBER_PATTERN = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def round2(value: float) -> float:
    """Round *value* to ``DECIMALS`` places, ties away from zero.

    The tie rule is applied to the exact binary value of the float, so
    ``round2(0.125) == 0.13`` while ``round2(1.005) == 1.0`` (1.005 is
    stored as 1.00499999...). Raises ``ValueError`` for NaN/inf.
    """
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Cannot round non-finite value: {value!r}")
    rounded = float(Decimal(number).quantize(_QUANTUM, context=_CONTEXT))
    # -0.0 -> 0.0
    return rounded + 0.0


def parse_raw_value(raw: Any) -> float | None:
    """Parse a pending-input string into a finite float.

    Returns ``None`` for missing, blank, non-numeric or non-finite input.
    Numbers that are not strings are accepted as-is when finite.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        number = float(raw)
        return number if math.isfinite(number) else None

    text = str(raw).strip()
    if text == "" or not _NUMBER_PATTERN.match(text):
        return None

    number = float(text)
    if not math.isfinite(number):
        return None
    return number
