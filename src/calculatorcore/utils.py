from __future__ import annotations

import math
from typing import Union

from calculatorcore.config import MAX_PLAIN_LENGTH, EXPONENT_DIGITS
from calculatorcore.model.errors import InvalidNumber

Number = Union[int, float]

# Above this, integral floats stop having a plain positional rendering
_PLAIN_INTEGER_LIMIT = 1e21


def number_to_string(value: Number) -> str:
    """Canonical text for a number: '42' for 42.0, repr() otherwise."""
    value = float(value)
    if value.is_integer() and abs(value) < _PLAIN_INTEGER_LIMIT:
        return str(int(value))
    return repr(value)


def parse_operand(text: Union[str, Number]) -> float:
    """Parse operand text (grouping commas allowed) into a finite float."""
    if isinstance(text, bool):
        raise InvalidNumber(f"Invalid number: {text!r}")
    try:
        if isinstance(text, str):
            value = float(text.replace(",", "").strip())
        else:
            value = float(text)
    except (TypeError, ValueError) as e:
        raise InvalidNumber(f"Invalid number: {text!r}") from e

    if not math.isfinite(value):
        raise InvalidNumber(f"Invalid number: {text!r}")
    return value


def format_number(value: Number) -> str:
    """
    Format a computed value for display.

    Long renderings switch to exponential notation, whole numbers from 1000
    upwards get thousands separators.

    Raises:
        InvalidNumber: If the value is NaN or infinite.
    """
    try:
        value = float(value)
    except (TypeError, ValueError) as e:
        raise InvalidNumber(f"Invalid number: {value!r}") from e
    if not math.isfinite(value):
        raise InvalidNumber("Invalid number")

    text = number_to_string(value)
    if len(text) > MAX_PLAIN_LENGTH:
        return f"{value:.{EXPONENT_DIGITS}e}"

    if abs(value) >= 1000 and "." not in text and "e" not in text:
        return f"{int(value):,}"

    return text
