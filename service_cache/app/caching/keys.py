"""
Cache key derivation and pattern checks.
"""

from typing import Optional
from urllib.parse import parse_qsl, urlencode

from shared.errors import InvalidPattern

DEFAULT_PREFIX = "cache:"
DEFAULT_METHOD = "GET"


def normalize_query(query: str) -> str:
    """Sort query parameters by name, then value.

    Blank values are kept so ``?a=&b=1`` and ``?b=1&a=`` map to the same key.
    """
    if not query:
        return ""
    pairs = parse_qsl(query, keep_blank_values=True)
    return urlencode(sorted(pairs))


def derive_key(
    method: str,
    path: str,
    query: str = "",
    *,
    namespace: Optional[str] = None,
    prefix: str = DEFAULT_PREFIX,
    normalize: bool = False,
) -> str:
    """Build the cache key for a read request.

    Keys look like ``cache:[<namespace>:][<METHOD>:]<path>[?<query>]``. The
    method qualifier is empty for ``DEFAULT_METHOD`` so plain GET entries
    can be matched by path globs such as ``cache:/users/*``. The result
    depends on the arguments only.
    """
    query = query.lstrip("?")
    if normalize:
        query = normalize_query(query)

    qualifier = method.upper()
    qualifier = "" if qualifier == DEFAULT_METHOD else f"{qualifier}:"
    scope = f"{namespace}:" if namespace else ""
    target = f"{path}?{query}" if query else path
    return f"{prefix}{scope}{qualifier}{target}"


def validate_pattern(pattern: str) -> str:
    """Reject glob patterns the store cannot match.

    Accepts ``*``, ``?``, ``[...]`` classes (``^`` negation and ranges) and
    backslash escapes.
    """
    if not isinstance(pattern, str) or not pattern:
        raise InvalidPattern(str(pattern), "Pattern must be a non-empty string")

    in_class = False
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\":
            if i + 1 >= len(pattern):
                raise InvalidPattern(pattern, "Dangling escape at end of pattern")
            i += 2
            continue
        if ch == "[" and not in_class:
            in_class = True
        elif ch == "]" and in_class:
            in_class = False
        i += 1

    if in_class:
        raise InvalidPattern(pattern, "Unterminated character class")
    return pattern
