"""Shim for ``aiohttp``, the promise-style third-party client.

Every ``ClientSession`` verb awaits ``ClientSession._request``, which
resolves to a ``ClientResponse`` carrying ``status``, ``headers`` and the
body behind ``read()``/``text()``/``json()``.  A synthesized response is
built as a ``ClientResponse`` whose body is already read, so it is never
tied to a connection.

Like the ``requests`` shim, it is only installed when the process has
already imported ``aiohttp`` by the time of the deferred check.
"""

import asyncio
import logging
import sys
from collections.abc import Callable
from typing import Any

from interpose.adapters.base import Interceptor
from interpose.engine.executor import PassThrough, SyntheticResponse, UpstreamResponse, execute
from interpose.rules.models import InterceptedRequest

logger = logging.getLogger(__name__)


def to_aiohttp_response(synthetic: SyntheticResponse, method: str, url: Any, session: Any) -> Any:
    """Shape a synthetic response as a fully read ``aiohttp.ClientResponse``."""
    from aiohttp import ClientResponse, RequestInfo
    from aiohttp.helpers import TimerNoop
    from multidict import CIMultiDict, CIMultiDictProxy

    headers = CIMultiDict(synthetic.headers)
    response = ClientResponse(
        method,
        url,
        writer=None,
        continue100=None,
        timer=TimerNoop(),
        request_info=RequestInfo(url, method, CIMultiDictProxy(CIMultiDict()), url),
        traces=[],
        loop=asyncio.get_running_loop(),
        session=session,
    )
    response.status = synthetic.status_code
    response.reason = synthetic.status_text
    response._headers = CIMultiDictProxy(headers)
    response._raw_headers = tuple((name.encode(), value.encode()) for name, value in headers.items())
    response._body = synthetic.content
    return response


class AiohttpInterceptor(Interceptor):
    """Wraps ``aiohttp.ClientSession._request``."""

    name = "aiohttp"

    def available(self) -> bool:
        return "aiohttp" in sys.modules

    def targets(self) -> dict[str, tuple[Any, str]]:
        import aiohttp

        return {"request": (aiohttp.ClientSession, "_request")}

    def build_wrapper(self, label: str) -> Callable[..., Any]:
        interceptor = self

        async def _request(session: Any, method: str, str_or_url: Any, **kwargs: Any) -> Any:
            return await interceptor.handle_request(session, method, str_or_url, kwargs)

        return _request

    async def handle_request(self, session: Any, method: str, str_or_url: Any, kwargs: dict[str, Any]) -> Any:
        original = self.original("request")
        url = session._build_url(str_or_url)
        intercepted = InterceptedRequest.observe(str(url), method)
        logger.debug("Intercepted aiohttp call: %s %s", intercepted.method, intercepted.url)
        rule = self.state.resolve(intercepted, self.name)
        if rule is None:
            return await original(session, method, str_or_url, **kwargs)

        self.state.report_match(intercepted, rule)

        async def upstream() -> UpstreamResponse:
            response = await original(session, method, str_or_url, **kwargs)
            body = await response.text(errors="replace")
            return UpstreamResponse(status_code=response.status, body=body, raw=response)

        outcome = await execute(
            rule.action,
            upstream,
            on_error=lambda message: self.state.warn(intercepted, message, rule),
        )
        if isinstance(outcome, PassThrough):
            if outcome.response is not None:
                return outcome.response
            return await original(session, method, str_or_url, **kwargs)
        return to_aiohttp_response(outcome, intercepted.method, url, session)
