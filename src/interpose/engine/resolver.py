"""First-match-wins rule resolution."""

import logging
from collections.abc import Iterable

from interpose.engine.matcher import ErrorCallback, matches
from interpose.rules.models import InterceptedRequest, Rule

logger = logging.getLogger(__name__)


def resolve(
    request: InterceptedRequest,
    rules: Iterable[Rule],
    on_error: ErrorCallback | None = None,
) -> Rule | None:
    """Return the earliest enabled rule in ``rules`` that matches ``request``.

    A rule with an unexpected shape is treated as non-matching; the search
    carries on with the next rule.
    """
    for rule in rules:
        try:
            if rule.enabled is not True:
                continue
            if matches(request, rule.matcher, on_error):
                return rule
        except (AttributeError, TypeError, ValueError) as exc:
            name = getattr(rule, "name", "<unnamed>")
            logger.warning("Skipping malformed rule %r: %s", name, exc)
            if on_error is not None:
                on_error(f"Malformed rule {name!r}: {exc}")
    return None
