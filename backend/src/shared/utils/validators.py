from typing import Any


def parse_int_id(value: Any) -> int | None:
    """Return `value` as a positive integer id, or None when it is not one.

    Accepts ints and digit strings (clients often send ids as strings); rejects
    bools, floats, blanks and non-positive values.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed > 0 else None
    return None
