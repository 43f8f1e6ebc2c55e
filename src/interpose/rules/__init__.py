"""Rule models, boundary validation and the in-memory rule store."""

from .models import (
    Action,
    ActionType,
    DelayAction,
    InterceptedRequest,
    JsonBody,
    JsonPatch,
    Matcher,
    PatchAction,
    ReplaceAction,
    ResponseType,
    Rule,
    StatusAction,
    TextBody,
    UrlMatchType,
    UrlPattern,
)
from .store import RuleStore, generate_rule_id
from .validation import RuleValidationError, parse_rule

__all__ = [
    "Action",
    "ActionType",
    "DelayAction",
    "InterceptedRequest",
    "JsonBody",
    "JsonPatch",
    "Matcher",
    "PatchAction",
    "ReplaceAction",
    "ResponseType",
    "Rule",
    "RuleStore",
    "RuleValidationError",
    "StatusAction",
    "TextBody",
    "UrlMatchType",
    "UrlPattern",
    "generate_rule_id",
    "parse_rule",
]
