"""
PagePilot - URL glob patterns

Glob syntax shared by route rules, wait_for_* patterns and log filters:

    *       any run of characters except "/"
    **      any run of characters, "/" included
    ?       a literal "?" (query strings are common in URLs)
    {a,b}   alternatives

Matching is anchored: the pattern must cover the whole URL.
"""

from __future__ import annotations

import functools
import re

_REGEX_SPECIALS = set("\\.+^$|()[]")


@functools.lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Translate a URL glob into a compiled, anchored regex."""
    out: list[str] = ["^"]
    in_group = False
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("\\?")
        elif c == "{":
            in_group = True
            out.append("(?:")
        elif c == "}" and in_group:
            in_group = False
            out.append(")")
        elif c == "," and in_group:
            out.append("|")
        elif c in _REGEX_SPECIALS:
            out.append("\\" + c)
        else:
            out.append(c)
        i += 1
    if in_group:
        raise ValueError(f"Unbalanced '{{' in URL pattern: {pattern}")
    out.append("$")
    return re.compile("".join(out))


def url_matches(pattern: str, url: str) -> bool:
    """True when ``url`` matches the glob ``pattern``."""
    return compile_glob(pattern).match(url) is not None
