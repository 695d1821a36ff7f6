from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable


@lru_cache(maxsize=512)
def compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a wildcard URL pattern: `*` matches anything (slashes included), the rest is literal."""
    body = ".*".join(re.escape(chunk) for chunk in pattern.split("*"))
    return re.compile(rf"^{body}$", re.DOTALL)


def matches(url: str, pattern: str) -> bool:
    return compile_pattern(pattern).fullmatch(url or "") is not None


def matches_any(url: str, patterns: Iterable[str]) -> bool:
    return any(matches(url, p) for p in patterns)
