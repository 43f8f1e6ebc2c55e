"""Event-driven request object with the XMLHttpRequest lifecycle.

``open()`` records the request, ``send()`` returns immediately and the
exchange runs as a task on the running asyncio loop, moving ``ready_state``
through OPENED, HEADERS_RECEIVED, LOADING and DONE and firing
``onreadystatechange`` at each step, then ``onload`` (or ``onerror``) and
``onloadend``.  The network work is done by an httpx transport, below the
client layer, so XHR traffic never passes through httpx client wrappers.

The public response attributes are read-only properties; their values
live in per-instance private slots.
"""

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

UNSENT = 0
OPENED = 1
HEADERS_RECEIVED = 2
LOADING = 3
DONE = 4


@dataclass(frozen=True)
class ProgressEvent:
    """Argument passed to ``onload``, ``onloadend`` and ``onerror``."""

    type: str
    loaded: int = 0
    total: int = 0
    length_computable: bool = True


Handler = Callable[..., Any]


class XMLHttpRequest:
    """One request/response exchange driven by callbacks."""

    UNSENT = UNSENT
    OPENED = OPENED
    HEADERS_RECEIVED = HEADERS_RECEIVED
    LOADING = LOADING
    DONE = DONE

    transport: httpx.AsyncBaseTransport | None = None
    base_url = ""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None):
        self._transport = transport
        self.method = ""
        self.url = ""
        self.request_headers: dict[str, str] = {}
        self.response_type = ""
        self.onreadystatechange: Handler | None = None
        self.onload: Handler | None = None
        self.onerror: Handler | None = None
        self.onloadend: Handler | None = None
        self._ready_state = UNSENT
        self._status = 0
        self._status_text = ""
        self._response_text = ""
        self._response: Any = ""
        self._response_headers: dict[str, str] = {}
        self._sent = False
        self._task: asyncio.Task | None = None
        self._done = asyncio.Event()

    # Read-only response state ---------------------------------------------

    @property
    def ready_state(self) -> int:
        return self._ready_state

    @property
    def status(self) -> int:
        return self._status

    @property
    def status_text(self) -> str:
        return self._status_text

    @property
    def response_text(self) -> str:
        return self._response_text

    @property
    def response(self) -> Any:
        return self._response

    # Request side ------------------------------------------------------------

    def open(self, method: str, url: str) -> None:
        """Start a new request; fires ``onreadystatechange`` with OPENED."""
        self.method = method.upper()
        self.url = str(url)
        self.request_headers = {}
        self._sent = False
        self._done = asyncio.Event()
        self._status = 0
        self._status_text = ""
        self._response_text = ""
        self._response = ""
        self._response_headers = {}
        self._ready_state = OPENED
        self._fire("readystatechange")

    def set_request_header(self, name: str, value: str) -> None:
        if self._ready_state != OPENED or self._sent:
            raise RuntimeError("set_request_header() requires an opened, unsent request")
        self.request_headers[name] = value

    def send(self, body: str | bytes | None = None) -> None:
        """Start the exchange on the running loop and return at once."""
        if self._ready_state != OPENED or self._sent:
            raise RuntimeError("send() requires an opened, unsent request")
        self._sent = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(body))

    def get_response_header(self, name: str) -> str | None:
        for key, value in self._response_headers.items():
            if key.lower() == name.lower():
                return value
        return None

    def get_all_response_headers(self) -> str:
        return "".join(f"{key.lower()}: {value}\r\n" for key, value in self._response_headers.items())

    async def wait(self) -> None:
        """Wait until ``onloadend`` has fired."""
        await self._done.wait()

    # Exchange ----------------------------------------------------------------

    async def fetch(self, body: str | bytes | None = None) -> httpx.Response:
        """Perform the network request without touching any event state."""
        transport = self._transport or self.transport or _default_transport()
        url = httpx.URL(self.base_url).join(self.url) if self.base_url else self.url
        request = httpx.Request(self.method, url, headers=self.request_headers, content=body)
        response = await transport.handle_async_request(request)
        response.request = request
        await response.aread()
        return response

    async def _run(self, body: str | bytes | None) -> None:
        try:
            try:
                response = await self.fetch(body)
            except httpx.HTTPError:
                self._fail()
                return
            self._deliver(response.status_code, response.reason_phrase, response.text, dict(response.headers))
        finally:
            self._done.set()

    def _deliver(self, status: int, status_text: str, text: str, headers: dict[str, str]) -> None:
        """Walk HEADERS_RECEIVED -> LOADING -> DONE and fire the completion events."""
        self._status = status
        self._status_text = status_text
        self._response_headers = headers
        self._ready_state = HEADERS_RECEIVED
        self._fire("readystatechange")
        self._ready_state = LOADING
        self._fire("readystatechange")
        self._response_text = text
        self._response = self._decode(text)
        self._ready_state = DONE
        self._fire("readystatechange")
        size = len(text)
        self._fire("load", ProgressEvent("load", loaded=size, total=size))
        self._fire("loadend", ProgressEvent("loadend", loaded=size, total=size))

    def _fail(self) -> None:
        self._status = 0
        self._status_text = ""
        self._ready_state = DONE
        self._fire("readystatechange")
        self._fire("error", ProgressEvent("error", length_computable=False))
        self._fire("loadend", ProgressEvent("loadend", length_computable=False))

    def _decode(self, text: str) -> Any:
        if self.response_type == "json":
            try:
                return json.loads(text)
            except ValueError:
                return None
        return text

    def _fire(self, event: str, payload: ProgressEvent | None = None) -> None:
        """Call the ``on<event>`` handler; a raising handler does not stop the exchange."""
        handler = getattr(self, f"on{event}")
        try:
            if handler is not None:
                if payload is None:
                    handler()
                else:
                    handler(payload)
        except Exception:
            logger.exception("XMLHttpRequest on%s handler raised", event)
        finally:
            if event == "loadend":
                self._done.set()


_shared_transport: httpx.AsyncHTTPTransport | None = None


def _default_transport() -> httpx.AsyncHTTPTransport:
    global _shared_transport
    if _shared_transport is None:
        _shared_transport = httpx.AsyncHTTPTransport()
    return _shared_transport
