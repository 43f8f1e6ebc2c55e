"""Activity reporting: a fire-and-forget side channel for matches and warnings."""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

logger = logging.getLogger(__name__)

MATCH = "match"
WARNING = "warning"


@dataclass(frozen=True)
class ActivityRecord:
    """One reported event.  ``kind`` separates applied rules from diagnostics."""

    url: str
    method: str
    rule_id: str | None = None
    rule_name: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    kind: str = MATCH
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "ruleId": self.rule_id,
            "ruleName": self.rule_name,
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind,
            "message": self.message,
        }


class ActivityReporter(Protocol):
    """Anything that can receive activity records."""

    def report(self, record: ActivityRecord) -> None: ...


class ActivityLog:
    """Bounded, newest-first in-memory log used as the default reporter."""

    def __init__(self, max_logs: int = 1000):
        self.max_logs = max_logs
        self._records: deque[ActivityRecord] = deque(maxlen=max_logs)

    def report(self, record: ActivityRecord) -> None:
        self._records.appendleft(record)

    def entries(self, limit: int | None = 100) -> list[ActivityRecord]:
        """Return up to ``limit`` records, newest first."""
        records = list(self._records)
        return records if limit is None else records[:limit]

    def matches(self) -> list[ActivityRecord]:
        return [r for r in self._records if r.kind == MATCH]

    def warnings(self) -> list[ActivityRecord]:
        return [r for r in self._records if r.kind == WARNING]

    def clear(self) -> int:
        """Remove all records.  Returns the count removed."""
        count = len(self._records)
        self._records.clear()
        return count

    def __len__(self) -> int:
        return len(self._records)


def notify(reporter: ActivityReporter | None, record: ActivityRecord) -> None:
    """Hand ``record`` to ``reporter`` without blocking or raising.

    On a running event loop delivery is deferred to the next loop iteration
    so it can never hold up the response; otherwise it happens inline.
    """
    if reporter is None:
        return
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        _deliver(reporter, record)
        return
    loop.call_soon(_deliver, reporter, record)


def _deliver(reporter: ActivityReporter, record: ActivityRecord) -> None:
    try:
        reporter.report(record)
    except Exception:
        logger.debug("Activity reporter failed for %s %s", record.method, record.url, exc_info=True)
