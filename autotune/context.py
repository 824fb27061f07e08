"""Client context sent along with started experiments."""

from __future__ import annotations

import locale
from datetime import datetime

from autotune.config import settings


def local_language(default: str | None = None) -> str:
    """Return the process locale as a BCP 47 tag, e.g. ``en-US``."""

    fallback = default or settings.DEFAULT_LANGUAGE
    try:
        code = locale.getlocale()[0]
    except ValueError:
        code = None
    if not code or code in ("C", "POSIX"):
        return fallback
    return code.split(".")[0].replace("_", "-")


def timezone_offset(now: datetime | None = None) -> int:
    """Minutes to add to local time to get UTC (positive west of Greenwich)."""

    if now is None or now.tzinfo is None:
        current = (now or datetime.now()).astimezone()
    else:
        current = now
    offset = current.utcoffset()
    if offset is None:
        return 0
    return -int(offset.total_seconds() // 60)


def client_context() -> dict[str, object]:
    return {"lang": local_language(), "tzo": timezone_offset()}


__all__ = ["client_context", "local_language", "timezone_offset"]
