"""In-memory rule store feeding the interception engine."""

import secrets
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from interpose.rules.models import Rule
from interpose.rules.validation import RuleValidationError, parse_rule

EXPORT_VERSION = "1.0"

StoreListener = Callable[["RuleStore"], None]


def generate_rule_id() -> str:
    """Return an id of the form ``<epoch-ms>-<random>``."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(5)[:9]}"


class RuleStore:
    """Ordered rule list plus a global enabled flag.

    Every write swaps in a new tuple, so a reader holding ``rules`` never
    observes a list being edited under it.
    """

    def __init__(self, rules: Iterable[Rule | Mapping[str, Any]] = (), enabled: bool = True):
        self._rules: tuple[Rule, ...] = ()
        self._enabled = enabled
        self._listeners: list[StoreListener] = []
        if rules:
            self._rules = self._build_all(rules, keep_ids=True)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return self._rules

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get_rules(self) -> tuple[Rule, ...]:
        return self._rules

    def is_enabled(self) -> bool:
        return self._enabled

    def get(self, rule_id: str) -> Rule | None:
        """Return the rule with ``rule_id`` or None."""
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        return None

    def subscribe(self, listener: StoreListener) -> None:
        """Register a callback run after every change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def set_enabled(self, enabled: bool) -> bool:
        self._enabled = enabled
        self._notify()
        return self._enabled

    def toggle(self) -> bool:
        """Flip the global enabled flag and return the new value."""
        return self.set_enabled(not self._enabled)

    def add(self, rule: Rule | Mapping[str, Any]) -> Rule:
        """Validate and append a rule, issuing a fresh id when it has none."""
        built = self._build(rule, keep_ids=True)
        self._check_unique(built.id, self._rules)
        self._rules = (*self._rules, built)
        self._notify()
        return built

    def update(self, rule_id: str, **changes: Any) -> Rule:
        """Merge ``changes`` (camelCase rule fields) into an existing rule."""
        index = self._index(rule_id)
        current = self._rules[index]
        if set(changes) == {"enabled"}:
            enabled = changes["enabled"]
            if not isinstance(enabled, bool):
                raise RuleValidationError("Rule enabled flag must be a boolean")
            updated = replace(current, enabled=enabled)
        else:
            merged = {**current.to_dict(), **changes}
            updated = parse_rule(merged, rule_id=current.id)
        rules = list(self._rules)
        rules[index] = updated
        self._rules = tuple(rules)
        self._notify()
        return updated

    def delete(self, rule_id: str) -> Rule:
        index = self._index(rule_id)
        removed = self._rules[index]
        self._rules = self._rules[:index] + self._rules[index + 1 :]
        self._notify()
        return removed

    def replace_all(self, rules: Iterable[Rule | Mapping[str, Any]]) -> tuple[Rule, ...]:
        """Swap the whole rule list, keeping ids that the rules already carry."""
        self._rules = self._build_all(rules, keep_ids=True)
        self._notify()
        return self._rules

    def import_rules(self, rules: Iterable[Mapping[str, Any]]) -> int:
        """Validate every rule first, then append them under fresh ids."""
        imported = self._build_all(rules, keep_ids=False)
        self._rules = (*self._rules, *imported)
        self._notify()
        return len(imported)

    def export(self) -> dict[str, Any]:
        return {
            "rules": [rule.to_dict() for rule in self._rules],
            "exportDate": datetime.now(UTC).isoformat(),
            "version": EXPORT_VERSION,
        }

    def clear(self) -> int:
        """Remove all rules.  Returns the count removed."""
        count = len(self._rules)
        self._rules = ()
        self._notify()
        return count

    def __len__(self) -> int:
        return len(self._rules)

    def _build(self, rule: Rule | Mapping[str, Any], *, keep_ids: bool) -> Rule:
        if isinstance(rule, Rule):
            if keep_ids and rule.id:
                return rule
            return replace(rule, id=generate_rule_id())
        existing = rule.get("id") if keep_ids and isinstance(rule, Mapping) else None
        return parse_rule(rule, rule_id=str(existing) if existing else generate_rule_id())

    def _build_all(self, rules: Iterable[Rule | Mapping[str, Any]], *, keep_ids: bool) -> tuple[Rule, ...]:
        built: list[Rule] = []
        for position, rule in enumerate(rules, start=1):
            try:
                candidate = self._build(rule, keep_ids=keep_ids)
            except RuleValidationError as exc:
                raise RuleValidationError(f"Invalid rule #{position}: {exc}") from exc
            self._check_unique(candidate.id, built)
            built.append(candidate)
        return tuple(built)

    @staticmethod
    def _check_unique(rule_id: str, rules: Iterable[Rule]) -> None:
        if any(existing.id == rule_id for existing in rules):
            raise RuleValidationError(f"Duplicate rule id: {rule_id}")

    def _index(self, rule_id: str) -> int:
        for index, rule in enumerate(self._rules):
            if rule.id == rule_id:
                return index
        raise KeyError(f"Rule not found: {rule_id}")

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
