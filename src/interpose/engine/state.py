"""Process-wide interception state.

One ``InterceptionState`` holds the current rule snapshot, the global
enabled flag, the saved original transport entry points and the reporter.
Every interceptor is handed the state explicitly and reads the snapshot on
every call, so a rule update is seen by the very next request.
"""

import logging
from collections.abc import Callable, Iterable
from typing import Any

from interpose.engine.reporter import WARNING, ActivityLog, ActivityRecord, ActivityReporter, notify
from interpose.engine.resolver import resolve
from interpose.rules.models import InterceptedRequest, Rule
from interpose.utils.debug import debug_decision

logger = logging.getLogger(__name__)


class InterceptionState:
    """Shared registry read by all interceptors."""

    def __init__(self, reporter: ActivityReporter | None = None):
        self._rules: tuple[Rule, ...] = ()
        self.enabled = True
        self.reporter: ActivityReporter | None = reporter if reporter is not None else ActivityLog()
        self._originals: dict[str, Callable[..., Any]] = {}

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def active(self) -> bool:
        """True when interception should run at all."""
        return self.enabled and bool(self._rules)

    def update_rules(self, rules: Iterable[Rule], enabled: bool | None = None) -> None:
        """Swap in a new snapshot.  Calls already past resolution are unaffected."""
        self._rules = tuple(rules)
        if enabled is not None:
            self.enabled = enabled
        logger.debug("Rule snapshot updated: %d rules, enabled=%s", len(self._rules), self.enabled)

    # Original entry points ---------------------------------------------

    def capture_original(self, key: str, func: Callable[..., Any]) -> Callable[..., Any]:
        """Save ``func`` under ``key`` unless something is saved there already."""
        return self._originals.setdefault(key, func)

    def original(self, key: str) -> Callable[..., Any]:
        return self._originals[key]

    def has_original(self, key: str) -> bool:
        return key in self._originals

    def release_original(self, key: str) -> Callable[..., Any] | None:
        return self._originals.pop(key, None)

    # Per-call helpers ----------------------------------------------------

    def resolve(self, request: InterceptedRequest, transport: str = "") -> Rule | None:
        """Resolve ``request`` against the current snapshot."""
        if not self.enabled:
            return None
        rule = resolve(request, self._rules, on_error=lambda message: self.warn(request, message))
        debug_decision(transport, request.method, request.url, rule.name if rule else None)
        return rule

    def report_match(self, request: InterceptedRequest, rule: Rule) -> None:
        notify(
            self.reporter,
            ActivityRecord(url=request.url, method=request.method, rule_id=rule.id, rule_name=rule.name),
        )

    def warn(self, request: InterceptedRequest, message: str, rule: Rule | None = None) -> None:
        """Report a diagnostic: a rule that could not apply."""
        notify(
            self.reporter,
            ActivityRecord(
                url=request.url,
                method=request.method,
                rule_id=rule.id if rule else None,
                rule_name=rule.name if rule else None,
                kind=WARNING,
                message=message,
            ),
        )


_default_state: InterceptionState | None = None


def get_state() -> InterceptionState:
    """Return the process-wide state, creating it on first use."""
    global _default_state
    if _default_state is None:
        _default_state = InterceptionState()
    return _default_state
