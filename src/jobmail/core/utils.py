from __future__ import annotations

import re
from datetime import datetime, timezone

RE_SLUG_DROP = re.compile(r"[^a-z0-9]+")


def utc_stamp(now: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp with microseconds, e.g. 20250101T120000123456."""
    dt = now or datetime.now(timezone.utc)
    return dt.strftime("%Y%m%dT%H%M%S%f")


def normalize_whitespace(text: str) -> str:
    return " ".join((text or "").split()).strip()


def slugify(text: str, max_len: int = 40, default: str = "email") -> str:
    excerpt = (text or "")[:max_len].lower()
    slug = RE_SLUG_DROP.sub("-", excerpt).strip("-")
    return slug or default


def preview(text: str, limit: int = 240) -> str:
    if not text:
        return ""
    t = text.replace("\n", "\\n")
    if len(t) <= limit:
        return t
    return t[:limit] + "…"


def safe_int(x, default: int = 0) -> int:
    try:
        return int(x)
    except Exception:
        return default

