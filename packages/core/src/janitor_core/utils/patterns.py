"""Branch-name pattern matching for protected/excluded branch lists."""

from __future__ import annotations

import re
from functools import lru_cache


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern[str]:
    # Only "*" is a wildcard; everything else (including "?", "[" and ".") is literal.
    parts = (re.escape(part) for part in pattern.split("*"))
    return re.compile(".*".join(parts), re.DOTALL)


def matches(name: str, patterns) -> bool:
    """Return True if ``name`` matches any of ``patterns``.

    A pattern containing ``*`` matches when the whole name fits with each ``*``
    standing for zero or more characters. A pattern without ``*`` must equal the
    name exactly. An empty pattern list never matches.
    """
    for pattern in patterns:
        if "*" in pattern:
            if _compile(pattern).fullmatch(name):
                return True
        elif name == pattern:
            return True
    return False
