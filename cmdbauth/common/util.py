"""Small helpers shared by the collectors and the condition builder."""

import re
from typing import Any, Hashable, Iterable, List, TypeVar

T = TypeVar("T", bound=Hashable)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INTEGER_RE = re.compile(r"[+-]?[0-9]+")


def unique(values: Iterable[T]) -> List[T]:
    """Drop repeated values, keeping the position of the first occurrence."""
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def _check_range(number: int, value: Any) -> int:
    if not INT64_MIN <= number <= INT64_MAX:
        raise ValueError(f"{value!r} is out of the 64-bit integer range")
    return number


def get_int64(value: Any) -> int:
    """Convert a loosely typed store value into a 64-bit integer.

    Accepts ints, floats without a fractional part and strings of ASCII decimal
    digits with an optional sign. Booleans are rejected even though they are ints
    in Python.

    Raises:
        ValueError: if the value is not an integer or does not fit in 64 bits
    """
    if isinstance(value, bool):
        raise ValueError(f"boolean {value!r} is not an integer")
    if isinstance(value, int):
        return _check_range(value, value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"float {value!r} has a fractional part")
        return _check_range(int(value), value)
    if isinstance(value, (str, bytes)):
        text = value.decode("ascii", errors="replace") if isinstance(value, bytes) else value
        text = text.strip()
        if not _INTEGER_RE.fullmatch(text):
            raise ValueError(f"string {value!r} is not an integer")
        return _check_range(int(text), value)
    raise ValueError(f"unsupported type {type(value).__name__} for integer value {value!r}")
