"""Interception of the event-driven ``XMLHttpRequest`` transport.

``open`` is wrapped only to remember the method and URL on the instance;
the real ``open`` still runs so its side effects are kept.  ``send``
resolves a rule against what ``open`` recorded.  On a match the real
``send`` is skipped and an override task is scheduled on the running loop,
so it runs strictly after the caller's ``send()`` has returned.  The task
waits out any delay, then walks the instance to LOADING and DONE, firing
``onreadystatechange`` at each step, then ``onload`` and ``onloadend``.

Only the private per-instance slots behind the read-only properties are
written; the class and other instances are never touched.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import httpx

from interpose.adapters.base import Interceptor
from interpose.engine.executor import PassThrough, SyntheticResponse, UpstreamResponse, execute
from interpose.rules.models import InterceptedRequest, Rule
from interpose.transports.xhr import DONE, LOADING, ProgressEvent, XMLHttpRequest

logger = logging.getLogger(__name__)

TARGET_ATTRIBUTE = "_interpose_target"


def emulate_response(xhr: XMLHttpRequest, synthetic: SyntheticResponse) -> None:
    """Complete ``xhr`` with ``synthetic``: LOADING, DONE, load, loadend."""
    xhr._ready_state = LOADING
    xhr._fire("readystatechange")

    xhr._status = synthetic.status_code
    xhr._status_text = synthetic.status_text
    xhr._response_headers = dict(synthetic.headers)
    xhr._response_text = synthetic.body
    xhr._response = xhr._decode(synthetic.body)
    xhr._ready_state = DONE
    xhr._fire("readystatechange")

    size = len(synthetic.body)
    xhr._fire("load", ProgressEvent("load", loaded=size, total=size))
    xhr._fire("loadend", ProgressEvent("loadend", loaded=size, total=size))


class XHRInterceptor(Interceptor):
    """Wraps ``XMLHttpRequest.open`` and ``XMLHttpRequest.send``."""

    name = "xhr"

    def targets(self) -> dict[str, tuple[Any, str]]:
        return {
            "open": (XMLHttpRequest, "open"),
            "send": (XMLHttpRequest, "send"),
        }

    def build_wrapper(self, label: str) -> Callable[..., Any]:
        interceptor = self
        if label == "open":

            def open(xhr: XMLHttpRequest, method: str, url: str, *args: Any, **kwargs: Any) -> None:
                setattr(xhr, TARGET_ATTRIBUTE, ((method or "GET").upper(), str(url)))
                return interceptor.original("open")(xhr, method, url, *args, **kwargs)

            return open

        def send(xhr: XMLHttpRequest, body: str | bytes | None = None) -> None:
            return interceptor.handle_send(xhr, body)

        return send

    def handle_send(self, xhr: XMLHttpRequest, body: str | bytes | None) -> None:
        original_send = self.original("send")
        target = getattr(xhr, TARGET_ATTRIBUTE, None)
        if target is None:
            return original_send(xhr, body)

        method, url = target
        intercepted = InterceptedRequest.observe(url, method)
        logger.debug("Intercepted XHR: %s %s", intercepted.method, intercepted.url)
        rule = self.state.resolve(intercepted, self.name)
        if rule is None:
            return original_send(xhr, body)

        if xhr.ready_state != XMLHttpRequest.OPENED or xhr._sent:
            raise RuntimeError("send() requires an opened, unsent request")
        loop = asyncio.get_running_loop()
        self.state.report_match(intercepted, rule)
        xhr._sent = True
        xhr._task = loop.create_task(self._override(xhr, body, intercepted, rule))
        return None

    async def _override(
        self,
        xhr: XMLHttpRequest,
        body: str | bytes | None,
        intercepted: InterceptedRequest,
        rule: Rule,
    ) -> None:
        async def upstream() -> UpstreamResponse:
            response = await xhr.fetch(body)
            return UpstreamResponse(status_code=response.status_code, body=response.text, raw=response)

        try:
            outcome = await execute(
                rule.action,
                upstream,
                on_error=lambda message: self.state.warn(intercepted, message, rule),
            )
        except httpx.HTTPError as exc:
            logger.debug("XHR upstream failed for %s %s: %s", intercepted.method, intercepted.url, exc)
            xhr._fail()
            return

        if isinstance(outcome, PassThrough):
            if outcome.response is not None:
                raw: httpx.Response = outcome.response
                xhr._deliver(raw.status_code, raw.reason_phrase, raw.text, dict(raw.headers))
                return
            xhr._sent = False
            self.original("send")(xhr, body)
            return
        emulate_response(xhr, outcome)
