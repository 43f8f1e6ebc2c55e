"""Test configuration and fixtures for interpose."""

import tempfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from interpose.config import EngineSettings
from interpose.engine.reporter import ActivityLog
from interpose.engine.state import InterceptionState
from interpose.interposer import Interposer
from interpose.rules.store import RuleStore


def rule_data(
    name: str,
    url: str,
    action: dict[str, Any],
    *,
    match: str = "exact",
    method: str | None = None,
    enabled: bool = True,
    flags: str | None = None,
) -> dict[str, Any]:
    """Build a rule mapping in the shape the store accepts."""
    pattern: dict[str, Any] = {"type": match, "value": url}
    if flags is not None:
        pattern["flags"] = flags
    matcher: dict[str, Any] = {"url": pattern}
    if method is not None:
        matcher["method"] = method
    return {"name": name, "enabled": enabled, "matcher": matcher, "action": action}


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_rule() -> Callable[..., dict[str, Any]]:
    return rule_data


@pytest.fixture
def activity() -> ActivityLog:
    return ActivityLog()


@pytest.fixture
def state(activity: ActivityLog) -> InterceptionState:
    """A private interception state so tests never share originals."""
    return InterceptionState(reporter=activity)


@pytest.fixture
def install(state: InterceptionState) -> Generator[Callable[..., Interposer], None, None]:
    """Install interception over a store of rules; everything is removed afterwards."""
    created: list[Interposer] = []

    def _install(rules: list[dict[str, Any]], *, enabled: bool = True, **settings: Any) -> Interposer:
        store = RuleStore(rules, enabled=enabled)
        interposer = Interposer(store=store, state=state, settings=EngineSettings(**settings))
        interposer.install()
        created.append(interposer)
        return interposer

    yield _install
    for interposer in reversed(created):
        interposer.close()
