from __future__ import annotations

import re

# signed 64-bit range, matching the BigInteger columns gateway ids land in
MAX_INT = 2**63 - 1

_INTEGRAL = re.compile(r"-?\d{1,19}(?:\.0{1,6})?")


def as_int(value) -> int | None:
    """Parse an integral webhook field (``5``, ``"5"``, ``5.0``); None otherwise."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        if not _INTEGRAL.fullmatch(text):
            return None
        number = int(text.split(".", 1)[0])
    if abs(number) > MAX_INT:
        return None
    return number


def positive_int(value) -> int | None:
    number = as_int(value)
    if number is None or number <= 0:
        return None
    return number
