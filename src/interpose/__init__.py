"""interpose: rule-driven interception of outgoing HTTP calls."""

from interpose.engine.state import get_state
from interpose.interposer import Interposer
from interpose.rules import RuleStore, RuleValidationError, parse_rule
from interpose.transports.xhr import XMLHttpRequest

__all__ = [
    "Interposer",
    "RuleStore",
    "RuleValidationError",
    "XMLHttpRequest",
    "app",
    "get_state",
    "main",
    "parse_rule",
]


def __getattr__(name: str):
    if name in ("app", "main"):
        from interpose.cli import app, main

        return {"app": app, "main": main}[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
