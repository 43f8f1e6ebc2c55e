"""URL and method matching.

Pure predicates.  A bad regex never raises out of here: the caller gets
``False`` and the optional ``on_error`` callback gets a message.
"""

import re
from collections.abc import Callable

from interpose.rules.models import InterceptedRequest, Matcher, UrlMatchType, UrlPattern

ErrorCallback = Callable[[str], None]

# JavaScript RegExp flags; g/u/v/d change nothing for a single test().
_FLAG_BITS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,
    "u": 0,
    "v": 0,
    "d": 0,
    "y": 0,
}


def compile_pattern(value: str, flags: str = "") -> re.Pattern[str]:
    """Compile a regex the way ``new RegExp(value, flags)`` would accept it.

    Raises ``re.error`` for a bad pattern, an unknown flag or a repeated flag.
    """
    bits = 0
    for flag in flags:
        if flag not in _FLAG_BITS or flags.count(flag) > 1:
            raise re.error(f"invalid regular expression flag {flag!r}")
        bits |= _FLAG_BITS[flag]
    return re.compile(value, bits)


def matches_url(
    url: str,
    pattern: UrlPattern | None,
    on_error: ErrorCallback | None = None,
) -> bool:
    """Return True if ``url`` satisfies ``pattern``.  No pattern means any URL."""
    if pattern is None:
        return True
    if pattern.type is UrlMatchType.EXACT:
        return url.strip() == pattern.value.strip()
    if pattern.type is UrlMatchType.PREFIX:
        return url.startswith(pattern.value)
    if pattern.type is UrlMatchType.REGEX:
        try:
            regex = compile_pattern(pattern.value, pattern.flags)
        except re.error as exc:
            if on_error is not None:
                on_error(f"Invalid regex {pattern.value!r}: {exc}")
            return False
        if "y" in pattern.flags:
            return regex.match(url) is not None
        return regex.search(url) is not None
    return False


def matches_method(method: str, expected: str | None) -> bool:
    """Compare against a method the caller already upper-cased."""
    return not expected or expected == method


def matches(
    request: InterceptedRequest,
    matcher: Matcher,
    on_error: ErrorCallback | None = None,
) -> bool:
    """Return True when both the URL pattern and the method accept ``request``."""
    if not matches_url(request.url, matcher.url, on_error):
        return False
    return matches_method(request.method, matcher.method)
