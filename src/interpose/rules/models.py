"""Data models for interception rules."""

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class UrlMatchType(str, Enum):
    """How a URL pattern is compared against the request URL."""

    EXACT = "exact"
    PREFIX = "prefix"
    REGEX = "regex"


class ActionType(str, Enum):
    """What a matched rule does to the response."""

    REPLACE = "replace"
    STATUS = "status"
    PATCH = "patch"
    DELAY = "delay"


class ResponseType(str, Enum):
    """Declared type of a synthesized body."""

    JSON = "json"
    TEXT = "text"
    HTML = "html"
    XML = "xml"
    JAVASCRIPT = "javascript"
    CSS = "css"

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self]


CONTENT_TYPES = {
    ResponseType.JSON: "application/json",
    ResponseType.TEXT: "text/plain",
    ResponseType.HTML: "text/html",
    ResponseType.XML: "application/xml",
    ResponseType.JAVASCRIPT: "application/javascript",
    ResponseType.CSS: "text/css",
}


@dataclass(frozen=True)
class UrlPattern:
    """URL half of a matcher."""

    type: UrlMatchType
    value: str
    flags: str = ""


@dataclass(frozen=True)
class Matcher:
    """Predicate portion of a rule.  ``method=None`` matches any method."""

    url: UrlPattern | None
    method: str | None = None


@dataclass(frozen=True)
class JsonBody:
    """A json body: any JSON value, or a string that is already serialized."""

    value: Any = None

    response_type = ResponseType.JSON

    def serialize(self) -> str:
        if isinstance(self.value, str):
            return self.value
        value = {} if self.value is None else self.value
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)

    def to_wire(self) -> Any:
        return self.value


@dataclass(frozen=True)
class TextBody:
    """A textual body (text, html, xml, javascript, css) used verbatim."""

    response_type: ResponseType
    text: str = ""

    def serialize(self) -> str:
        return self.text

    def to_wire(self) -> Any:
        return self.text


ResponseBody = JsonBody | TextBody


@dataclass(frozen=True)
class ReplaceAction:
    """Synthesize a full response; status defaults to 200."""

    body: ResponseBody = field(default_factory=JsonBody)
    status_code: int = 200
    content_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    delay: float = 0

    type = ActionType.REPLACE


@dataclass(frozen=True)
class StatusAction:
    """Synthesize a response whose point is the status code."""

    status_code: int
    body: ResponseBody = field(default_factory=JsonBody)
    content_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    delay: float = 0

    type = ActionType.STATUS


@dataclass(frozen=True)
class JsonPatch:
    """Assign ``value`` at a dot-separated ``path``."""

    path: str
    value: Any = None


@dataclass(frozen=True)
class PatchAction:
    """Rewrite fields of the real upstream JSON response."""

    patches: tuple[JsonPatch, ...]
    status_code: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    delay: float = 0

    type = ActionType.PATCH


@dataclass(frozen=True)
class DelayAction:
    """Hold the request for ``delay`` milliseconds, then let it through."""

    delay: float = 0

    type = ActionType.DELAY


Action = ReplaceAction | StatusAction | PatchAction | DelayAction


@dataclass(frozen=True)
class Rule:
    """A matcher/action pair.  Rules are never mutated once built."""

    id: str
    name: str
    matcher: Matcher
    action: Action
    enabled: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Serialise back to the camelCase mapping accepted by ``parse_rule``."""
        url: dict[str, Any] | None = None
        if self.matcher.url is not None:
            url = {"type": self.matcher.url.type.value, "value": self.matcher.url.value}
            if self.matcher.url.flags:
                url["flags"] = self.matcher.url.flags
        matcher: dict[str, Any] = {"url": url}
        if self.matcher.method:
            matcher["method"] = self.matcher.method
        return {
            "id": self.id,
            "name": self.name,
            "enabled": self.enabled,
            "matcher": matcher,
            "action": _action_to_dict(self.action),
        }


def _action_to_dict(action: Action) -> dict[str, Any]:
    data: dict[str, Any] = {"type": action.type.value}
    if isinstance(action, (ReplaceAction, StatusAction)):
        data["statusCode"] = action.status_code
        data["responseType"] = action.body.response_type.value
        data["response"] = action.body.to_wire()
        if action.content_type:
            data["contentType"] = action.content_type
    elif isinstance(action, PatchAction):
        data["patches"] = [{"path": p.path, "value": p.value} for p in action.patches]
        if action.status_code is not None:
            data["statusCode"] = action.status_code
    if not isinstance(action, DelayAction) and action.headers:
        data["headers"] = dict(action.headers)
    if action.delay or isinstance(action, DelayAction):
        data["delay"] = action.delay
    return data


@dataclass(frozen=True)
class InterceptedRequest:
    """One observed transport call, consumed by matching and then dropped."""

    url: str
    method: str
    timestamp: float = 0.0

    @classmethod
    def observe(cls, url: Any, method: str | None = None) -> "InterceptedRequest":
        """Build a request record at the moment a transport call is seen."""
        return cls(url=str(url), method=(method or "GET").upper(), timestamp=time.time())
