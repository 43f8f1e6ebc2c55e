"""Per-thread tracing of interception decisions, printed to stderr with rich."""

import threading

from rich.console import Console

_debug_state = threading.local()


def set_debug_enabled(enabled: bool) -> None:
    """Set debug mode for the current thread."""
    _debug_state.enabled = enabled


def is_debug_enabled() -> bool:
    return getattr(_debug_state, "enabled", False)


def debug_decision(transport: str, method: str, url: str, rule_name: str | None) -> None:
    """Trace one resolution: which rule won, or that none did."""
    if not is_debug_enabled():
        return
    category = "miss" if rule_name is None else "match"
    console = Console(stderr=True)
    console.print(f"[DEBUG:{category}] {transport}: {method} {url}", style="bold cyan", markup=False)
    console.print(f"  Rule: {rule_name or 'no matching rule'}", style="dim", markup=False)
