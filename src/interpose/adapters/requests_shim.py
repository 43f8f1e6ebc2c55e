"""Shim for ``requests``, the callback-style third-party client.

``requests.Session.send`` is the terminal step every ``requests`` call goes
through; response callbacks are the request's ``hooks["response"]``.  A
synthesized response is shaped as a ``requests.Response`` and handed to
those hooks, as the real ``send`` would.

The shim is optional: it is only installed when the process has already
imported ``requests`` by the time of the deferred check.
"""

import logging
import sys
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from interpose.adapters.base import Interceptor
from interpose.engine.executor import PassThrough, SyntheticResponse, UpstreamResponse, execute_sync
from interpose.rules.models import InterceptedRequest

logger = logging.getLogger(__name__)


def to_requests_response(synthetic: SyntheticResponse, request: Any) -> Any:
    """Shape a synthetic response as a fully read ``requests.Response``."""
    from requests.models import Response
    from requests.structures import CaseInsensitiveDict

    response = Response()
    response.status_code = synthetic.status_code
    response.reason = synthetic.status_text
    response.headers = CaseInsensitiveDict(synthetic.headers)
    response._content = synthetic.content
    response._content_consumed = True
    response.encoding = "utf-8"
    response.url = request.url
    response.request = request
    response.elapsed = timedelta(0)
    return response


class RequestsInterceptor(Interceptor):
    """Wraps ``requests.Session.send``."""

    name = "requests"

    def available(self) -> bool:
        return "requests" in sys.modules

    def targets(self) -> dict[str, tuple[Any, str]]:
        import requests

        return {"send": (requests.Session, "send")}

    def build_wrapper(self, label: str) -> Callable[..., Any]:
        interceptor = self

        def send(session: Any, request: Any, **kwargs: Any) -> Any:
            return interceptor.handle_send(session, request, kwargs)

        return send

    def handle_send(self, session: Any, request: Any, kwargs: dict[str, Any]) -> Any:
        from requests.hooks import dispatch_hook

        original = self.original("send")
        intercepted = InterceptedRequest.observe(request.url, request.method)
        logger.debug("Intercepted requests call: %s %s", intercepted.method, intercepted.url)
        rule = self.state.resolve(intercepted, self.name)
        if rule is None:
            return original(session, request, **kwargs)

        self.state.report_match(intercepted, rule)

        def upstream() -> UpstreamResponse:
            # hooks run once, on whatever response the caller finally gets
            hooks = request.hooks
            request.hooks = {"response": []}
            try:
                response = original(session, request, **kwargs)
            finally:
                request.hooks = hooks
            return UpstreamResponse(status_code=response.status_code, body=response.text, raw=response)

        outcome = execute_sync(
            rule.action,
            upstream,
            on_error=lambda message: self.state.warn(intercepted, message, rule),
        )
        if isinstance(outcome, PassThrough):
            # requests.Response is falsy for error statuses
            if outcome.response is not None:
                return dispatch_hook("response", request.hooks, outcome.response, **kwargs)
            return original(session, request, **kwargs)
        response = to_requests_response(outcome, request)
        return dispatch_hook("response", request.hooks, response, **kwargs)
