from .validators import parse_int_id


__all__ = [
    "parse_int_id",
]
