from typing import Any

from .settings import Settings, get_settings


def env(key: str, default: Any = None) -> Any:
    """Access any environment variable through settings.

    Defined settings fields come back validated and type-converted; anything
    else falls through to the raw values captured by `extra="allow"`.
    """
    settings = get_settings()

    value = getattr(settings, key.upper(), None)
    if value is not None:
        return value

    value = settings.__dict__.get(key.upper(), default)
    if value is not None:
        return value

    return settings.__dict__.get(key.lower(), default)


__all__ = ["Settings", "env", "get_settings"]
