"""Matching, resolution, execution and shared interception state."""

from .executor import PassThrough, SyntheticResponse, UpstreamResponse, execute, execute_sync
from .matcher import matches, matches_method, matches_url
from .reporter import ActivityLog, ActivityRecord, ActivityReporter
from .resolver import resolve
from .state import InterceptionState, get_state

__all__ = [
    "ActivityLog",
    "ActivityRecord",
    "ActivityReporter",
    "InterceptionState",
    "PassThrough",
    "SyntheticResponse",
    "UpstreamResponse",
    "execute",
    "execute_sync",
    "get_state",
    "matches",
    "matches_method",
    "matches_url",
    "resolve",
]
