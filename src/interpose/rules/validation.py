"""Boundary validation: turn raw rule mappings into immutable ``Rule`` objects."""

from collections.abc import Mapping
from typing import Any

from interpose.rules.models import (
    Action,
    ActionType,
    DelayAction,
    JsonBody,
    JsonPatch,
    Matcher,
    PatchAction,
    ReplaceAction,
    ResponseBody,
    ResponseType,
    Rule,
    StatusAction,
    TextBody,
    UrlMatchType,
    UrlPattern,
)

URL_TYPES = tuple(t.value for t in UrlMatchType)
ACTION_TYPES = tuple(t.value for t in ActionType)
RESPONSE_TYPES = tuple(t.value for t in ResponseType)


class RuleValidationError(ValueError):
    """A rule mapping does not have the shape the engine expects."""


def parse_rule(data: Any, *, rule_id: str | None = None) -> Rule:
    """Validate a rule mapping and build a ``Rule``.

    ``rule_id`` overrides whatever id the mapping carries; the store uses it
    when it issues fresh ids.
    """
    if not isinstance(data, Mapping):
        raise RuleValidationError("Rule must be an object")

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise RuleValidationError("Rule must have a valid name")

    enabled = data.get("enabled", True)
    if not isinstance(enabled, bool):
        raise RuleValidationError("Rule enabled flag must be a boolean")

    ident = rule_id if rule_id is not None else data.get("id")
    if ident is not None and not isinstance(ident, str):
        ident = str(ident)

    return Rule(
        id=ident or "",
        name=name,
        enabled=enabled,
        matcher=parse_matcher(data.get("matcher")),
        action=parse_action(data.get("action")),
    )


def parse_matcher(data: Any) -> Matcher:
    if not isinstance(data, Mapping):
        raise RuleValidationError("Rule must have a matcher object")

    url = data.get("url")
    if not isinstance(url, Mapping):
        raise RuleValidationError("Rule must have a valid URL matcher")
    if url.get("type") not in URL_TYPES:
        raise RuleValidationError('URL matcher type must be "exact", "prefix", or "regex"')
    value = url.get("value")
    if not isinstance(value, str) or not value:
        raise RuleValidationError("URL matcher must have a valid value")
    flags = url.get("flags") or ""
    if not isinstance(flags, str):
        raise RuleValidationError("URL matcher flags must be a string")

    method = data.get("method")
    if method is not None and not isinstance(method, str):
        raise RuleValidationError("Matcher method must be a string")

    return Matcher(
        url=UrlPattern(type=UrlMatchType(url["type"]), value=value, flags=flags),
        method=method.upper() if method else None,
    )


def parse_action(data: Any) -> Action:
    if not isinstance(data, Mapping):
        raise RuleValidationError("Rule must have an action object")

    kind = data.get("type")
    if kind not in ACTION_TYPES:
        raise RuleValidationError('Action type must be "replace", "patch", "delay", or "status"')
    action_type = ActionType(kind)

    if action_type is ActionType.DELAY:
        delay = data.get("delay")
        if not _is_number(delay) or delay < 0:
            raise RuleValidationError("Delay action must have a valid delay in milliseconds")
        return DelayAction(delay=delay)

    delay = _optional_delay(data)
    headers = _headers(data.get("headers"))
    status_code = data.get("statusCode")
    if status_code is not None:
        _check_status(status_code)

    if action_type is ActionType.PATCH:
        return PatchAction(
            patches=_patches(data.get("patches")),
            status_code=status_code,
            headers=headers,
            delay=delay,
        )

    body = parse_body(data.get("responseType", "json"), data.get("response"))
    content_type = data.get("contentType")
    if content_type is not None and not isinstance(content_type, str):
        raise RuleValidationError("contentType must be a string")

    if action_type is ActionType.STATUS:
        if status_code is None:
            raise RuleValidationError("Status action must have a statusCode")
        return StatusAction(
            status_code=status_code,
            body=body,
            content_type=content_type or None,
            headers=headers,
            delay=delay,
        )

    return ReplaceAction(
        body=body,
        status_code=200 if status_code is None else status_code,
        content_type=content_type or None,
        headers=headers,
        delay=delay,
    )


def parse_body(response_type: Any, response: Any) -> ResponseBody:
    """Build the body variant selected by ``responseType``."""
    if response_type is None:
        response_type = ResponseType.JSON.value
    if response_type not in RESPONSE_TYPES:
        raise RuleValidationError(f"responseType must be one of: {', '.join(RESPONSE_TYPES)}")
    kind = ResponseType(response_type)
    if kind is ResponseType.JSON:
        return JsonBody(value=response)
    if response is None:
        response = ""
    if not isinstance(response, str):
        raise RuleValidationError(f"A {kind.value} response must be a string")
    return TextBody(response_type=kind, text=response)


def _patches(raw: Any) -> tuple[JsonPatch, ...]:
    if not isinstance(raw, (list, tuple)):
        raise RuleValidationError("Patch action must have a patches array")
    if not raw:
        raise RuleValidationError("Patch action must have at least one patch")
    patches = []
    for item in raw:
        if not isinstance(item, Mapping):
            raise RuleValidationError("Each patch must be an object")
        path = item.get("path")
        if not isinstance(path, str) or not path:
            raise RuleValidationError("Each patch must have a non-empty path")
        patches.append(JsonPatch(path=path, value=item.get("value")))
    return tuple(patches)


def _headers(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise RuleValidationError("headers must be an object")
    for key, value in raw.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise RuleValidationError("header names and values must be strings")
    return dict(raw)


def _optional_delay(data: Mapping[str, Any]) -> float:
    delay = data.get("delay")
    if delay is None:
        return 0
    if not _is_number(delay) or delay < 0:
        raise RuleValidationError("delay must be a non-negative number of milliseconds")
    return delay


def _check_status(status_code: Any) -> None:
    if isinstance(status_code, bool) or not isinstance(status_code, int):
        raise RuleValidationError("statusCode must be an integer")
    if not 100 <= status_code <= 599:
        raise RuleValidationError("statusCode must be between 100 and 599")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
