"""Interception of httpx, the native fetch-style client.

``httpx.AsyncClient.send`` and ``httpx.Client.send`` are the single choke
points every httpx request goes through, so wrapping them covers
``get``/``post``/``request``/``stream`` alike.  Unmatched requests go to
the saved original with the original arguments and come back untouched.
"""

import logging
from collections.abc import Callable
from datetime import timedelta
from typing import Any

import httpx

from interpose.adapters.base import Interceptor
from interpose.engine.executor import (
    PassThrough,
    SyntheticResponse,
    UpstreamResponse,
    execute,
    execute_sync,
)
from interpose.rules.models import InterceptedRequest

logger = logging.getLogger(__name__)


def to_httpx_response(synthetic: SyntheticResponse, request: httpx.Request) -> httpx.Response:
    """Shape a synthetic response as a fully read ``httpx.Response``."""
    response = httpx.Response(
        status_code=synthetic.status_code,
        headers=synthetic.headers,
        content=synthetic.content,
        request=request,
        extensions={"reason_phrase": synthetic.status_text.encode("ascii")},
    )
    response.elapsed = timedelta(0)
    return response


class FetchInterceptor(Interceptor):
    """Wraps the async and sync httpx clients."""

    name = "fetch"

    def targets(self) -> dict[str, tuple[Any, str]]:
        return {
            "async_send": (httpx.AsyncClient, "send"),
            "send": (httpx.Client, "send"),
        }

    def build_wrapper(self, label: str) -> Callable[..., Any]:
        interceptor = self
        if label == "async_send":

            async def send(client: httpx.AsyncClient, request: httpx.Request, *args: Any, **kwargs: Any):
                return await interceptor.handle_async(client, request, args, kwargs)

            return send

        def send_sync(client: httpx.Client, request: httpx.Request, *args: Any, **kwargs: Any):
            return interceptor.handle_sync(client, request, args, kwargs)

        return send_sync

    async def handle_async(
        self,
        client: httpx.AsyncClient,
        request: httpx.Request,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> httpx.Response:
        original = self.original("async_send")
        intercepted = InterceptedRequest.observe(request.url, request.method)
        logger.debug("Intercepted fetch: %s %s", intercepted.method, intercepted.url)
        rule = self.state.resolve(intercepted, self.name)
        if rule is None:
            return await original(client, request, *args, **kwargs)

        self.state.report_match(intercepted, rule)

        async def upstream() -> UpstreamResponse:
            response = await original(client, request, *args, **kwargs)
            await response.aread()
            return UpstreamResponse(status_code=response.status_code, body=response.text, raw=response)

        outcome = await execute(
            rule.action,
            upstream,
            on_error=lambda message: self.state.warn(intercepted, message, rule),
        )
        if isinstance(outcome, PassThrough):
            if outcome.response is not None:
                return outcome.response
            return await original(client, request, *args, **kwargs)
        return to_httpx_response(outcome, request)

    def handle_sync(
        self,
        client: httpx.Client,
        request: httpx.Request,
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> httpx.Response:
        original = self.original("send")
        intercepted = InterceptedRequest.observe(request.url, request.method)
        logger.debug("Intercepted fetch: %s %s", intercepted.method, intercepted.url)
        rule = self.state.resolve(intercepted, self.name)
        if rule is None:
            return original(client, request, *args, **kwargs)

        self.state.report_match(intercepted, rule)

        def upstream() -> UpstreamResponse:
            response = original(client, request, *args, **kwargs)
            response.read()
            return UpstreamResponse(status_code=response.status_code, body=response.text, raw=response)

        outcome = execute_sync(
            rule.action,
            upstream,
            on_error=lambda message: self.state.warn(intercepted, message, rule),
        )
        if isinstance(outcome, PassThrough):
            if outcome.response is not None:
                return outcome.response
            return original(client, request, *args, **kwargs)
        return to_httpx_response(outcome, request)
