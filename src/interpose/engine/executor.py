"""Action execution: turn a matched rule's action into a synthetic response.

The executor knows nothing about transports.  Adapters hand it an
``upstream`` callable that performs the real call and reduces the result to
an ``UpstreamResponse``; they get back either a ``SyntheticResponse`` to
shape into their own response type, or a ``PassThrough`` telling them to
use the real transport.
"""

import asyncio
import copy
import json
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from interpose.engine.matcher import ErrorCallback
from interpose.rules.models import (
    Action,
    DelayAction,
    JsonPatch,
    PatchAction,
    ReplaceAction,
    ResponseType,
    StatusAction,
)

logger = logging.getLogger(__name__)

MODIFIED_BY_HEADER = "X-Modified-By"
MODIFIED_BY_VALUE = "interpose"
JSON_CONTENT_TYPE = ResponseType.JSON.content_type


class PatchError(ValueError):
    """The upstream body could not be patched."""


@dataclass(frozen=True)
class SyntheticResponse:
    """Transport-neutral response built by the executor."""

    status_code: int
    content_type: str
    body: str
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def status_text(self) -> str:
        return "Error" if self.status_code >= 400 else "OK"

    @property
    def content(self) -> bytes:
        return self.body.encode("utf-8")

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass(frozen=True)
class UpstreamResponse:
    """The real response, reduced to what patching needs.

    ``raw`` is the transport's own response object, handed back untouched
    when patching fails.
    """

    status_code: int
    body: str
    raw: Any = None


@dataclass(frozen=True)
class PassThrough:
    """Use the real transport.

    With ``response`` unset the adapter calls the original entry point with
    the original arguments; otherwise it returns ``response`` as is.
    """

    response: Any = None


Outcome = SyntheticResponse | PassThrough
AsyncUpstream = Callable[[], Awaitable[UpstreamResponse]]
SyncUpstream = Callable[[], UpstreamResponse]


def merge_headers(*layers: Mapping[str, str] | None) -> dict[str, str]:
    """Merge header maps left to right, comparing names case-insensitively."""
    merged: dict[str, str] = {}
    names: dict[str, str] = {}
    for layer in layers:
        for name, value in (layer or {}).items():
            previous = names.get(name.lower())
            if previous is not None:
                del merged[previous]
            names[name.lower()] = name
            merged[name] = value
    return merged


def build_response(action: ReplaceAction | StatusAction) -> SyntheticResponse:
    """Build the response for a replace or status action."""
    content_type = action.content_type or action.body.response_type.content_type
    headers = merge_headers(
        {"Content-Type": content_type, MODIFIED_BY_HEADER: MODIFIED_BY_VALUE},
        action.headers,
    )
    return SyntheticResponse(
        status_code=action.status_code,
        content_type=_content_type_of(headers, content_type),
        body=action.body.serialize(),
        headers=headers,
    )


def apply_patches(data: Any, patches: Iterable[JsonPatch]) -> Any:
    """Return a deep copy of ``data`` with every patch assigned in order.

    Missing or scalar intermediate levels become empty mappings.  Lists are
    walked by integer index.
    """
    if not isinstance(data, (dict, list)):
        raise PatchError("Response body is not a JSON object or array")
    patched = copy.deepcopy(data)
    for patch in patches:
        keys = patch.path.split(".")
        current = patched
        for key in keys[:-1]:
            child = _get_child(current, key)
            if not isinstance(child, (dict, list)):
                child = {}
                _set_child(current, key, child)
            current = child
        _set_child(current, keys[-1], copy.deepcopy(patch.value))
    return patched


def patch_response(action: PatchAction, upstream: UpstreamResponse) -> SyntheticResponse:
    """Patch the real JSON body; raises ``PatchError`` if it is not JSON."""
    try:
        data = json.loads(upstream.body)
    except ValueError as exc:
        raise PatchError(f"Upstream body is not valid JSON: {exc}") from exc
    patched = apply_patches(data, action.patches)
    headers = merge_headers(
        {"Content-Type": JSON_CONTENT_TYPE, MODIFIED_BY_HEADER: MODIFIED_BY_VALUE},
        action.headers,
    )
    status = action.status_code if action.status_code is not None else upstream.status_code
    return SyntheticResponse(
        status_code=status,
        content_type=_content_type_of(headers, JSON_CONTENT_TYPE),
        body=json.dumps(patched, separators=(",", ":"), ensure_ascii=False),
        headers=headers,
    )


async def execute(
    action: Action,
    upstream: AsyncUpstream | None = None,
    on_error: ErrorCallback | None = None,
) -> Outcome:
    """Run ``action``.  The delay, if any, is awaited before anything else."""
    delay = getattr(action, "delay", 0)
    if delay:
        await asyncio.sleep(delay / 1000)
    if isinstance(action, DelayAction):
        return PassThrough()
    if isinstance(action, (ReplaceAction, StatusAction)):
        return build_response(action)
    if isinstance(action, PatchAction):
        if upstream is None:
            raise ValueError("A patch action needs an upstream call")
        return _patch_or_fallback(action, await upstream(), on_error)
    _unknown_action(action, on_error)
    return PassThrough()


def execute_sync(
    action: Action,
    upstream: SyncUpstream | None = None,
    on_error: ErrorCallback | None = None,
) -> Outcome:
    """Blocking twin of ``execute`` for blocking transports."""
    delay = getattr(action, "delay", 0)
    if delay:
        time.sleep(delay / 1000)
    if isinstance(action, DelayAction):
        return PassThrough()
    if isinstance(action, (ReplaceAction, StatusAction)):
        return build_response(action)
    if isinstance(action, PatchAction):
        if upstream is None:
            raise ValueError("A patch action needs an upstream call")
        return _patch_or_fallback(action, upstream(), on_error)
    _unknown_action(action, on_error)
    return PassThrough()


def _patch_or_fallback(
    action: PatchAction,
    upstream: UpstreamResponse,
    on_error: ErrorCallback | None,
) -> Outcome:
    try:
        return patch_response(action, upstream)
    except PatchError as exc:
        logger.warning("Patch failed, returning the real response: %s", exc)
        if on_error is not None:
            on_error(f"Patch failed: {exc}")
        return PassThrough(response=upstream.raw)


def _unknown_action(action: Any, on_error: ErrorCallback | None) -> None:
    logger.warning("Unsupported action %r, passing the request through", action)
    if on_error is not None:
        on_error(f"Unsupported action type: {getattr(action, 'type', action)!r}")


def _content_type_of(headers: Mapping[str, str], default: str) -> str:
    for name, value in headers.items():
        if name.lower() == "content-type":
            return value
    return default


def _get_child(container: dict | list, key: str) -> Any:
    if isinstance(container, list):
        return container[_list_index(container, key)]
    return container.get(key)


def _set_child(container: dict | list, key: str, value: Any) -> None:
    if isinstance(container, list):
        container[_list_index(container, key)] = value
    else:
        container[key] = value


def _list_index(container: list, key: str) -> int:
    try:
        index = int(key)
    except ValueError:
        raise PatchError(f"Cannot use key {key!r} on a JSON array") from None
    if not -len(container) <= index < len(container):
        raise PatchError(f"Index {index} is out of range")
    return index
