"""Tests for the XMLHttpRequest transport and its interception."""

import asyncio

import httpx
import pytest

from interpose.transports.xhr import DONE, HEADERS_RECEIVED, LOADING, OPENED, UNSENT, XMLHttpRequest


def _server(status: int = 200, body: str = '{"source":"network"}', calls: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append((request.method, str(request.url)))
        return httpx.Response(status, text=body, headers={"Content-Type": "application/json"})

    return httpx.MockTransport(handler)


def _recorder(xhr: XMLHttpRequest) -> list:
    events: list = []
    xhr.onreadystatechange = lambda: events.append(("readystatechange", xhr.ready_state))
    xhr.onload = lambda event: events.append(("load", event.loaded, event.total))
    xhr.onerror = lambda event: events.append(("error",))
    xhr.onloadend = lambda event: events.append(("loadend", event.loaded))
    return events


# ── Plain transport ──────────────────────────────────────────────


class TestXMLHttpRequest:
    async def test_network_lifecycle(self):
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        events = _recorder(xhr)
        assert xhr.ready_state == UNSENT

        xhr.open("get", "https://api.x/m")
        xhr.set_request_header("X-Trace", "1")
        xhr.send()
        assert events == [("readystatechange", OPENED)]
        await xhr.wait()

        body = '{"source":"network"}'
        assert events == [
            ("readystatechange", OPENED),
            ("readystatechange", HEADERS_RECEIVED),
            ("readystatechange", LOADING),
            ("readystatechange", DONE),
            ("load", len(body), len(body)),
            ("loadend", len(body)),
        ]
        assert calls == [("GET", "https://api.x/m")]
        assert xhr.status == 200
        assert xhr.status_text == "OK"
        assert xhr.response_text == body
        assert xhr.get_response_header("content-type") == "application/json"

    async def test_json_response_type(self):
        xhr = XMLHttpRequest(transport=_server())
        xhr.response_type = "json"
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await xhr.wait()
        assert xhr.response == {"source": "network"}

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        xhr = XMLHttpRequest(transport=httpx.MockTransport(handler))
        events = _recorder(xhr)
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await xhr.wait()
        assert events[-3:] == [("readystatechange", DONE), ("error",), ("loadend", 0)]
        assert xhr.status == 0

    async def test_send_requires_open(self):
        xhr = XMLHttpRequest(transport=_server())
        with pytest.raises(RuntimeError):
            xhr.send()
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        with pytest.raises(RuntimeError):
            xhr.send()
        await xhr.wait()

    async def test_response_properties_are_read_only(self):
        xhr = XMLHttpRequest()
        with pytest.raises(AttributeError):
            xhr.status = 200
        with pytest.raises(AttributeError):
            xhr.ready_state = DONE

    async def test_raising_handler_still_reaches_loadend(self):
        xhr = XMLHttpRequest(transport=_server())
        finished: list[str] = []

        def on_load(event):
            raise RuntimeError("page bug")

        xhr.onload = on_load
        xhr.onloadend = lambda event: finished.append("loadend")
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await asyncio.wait_for(xhr.wait(), 1)
        assert finished == ["loadend"]
        assert xhr.ready_state == DONE

    async def test_base_url_resolves_relative_urls(self):
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        xhr.base_url = "https://app.test"
        xhr.open("GET", "/api/m")
        xhr.send()
        await xhr.wait()
        assert calls == [("GET", "https://app.test/api/m")]


# ── Interception ─────────────────────────────────────────────────


class TestXHRInterception:
    async def test_replace_fires_loading_done_load_loadend_in_order(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "replace", "response": {"mocked": True}})])
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        events = _recorder(xhr)

        xhr.open("GET", "/m")
        xhr.send()
        assert xhr.ready_state == OPENED
        assert events == [("readystatechange", OPENED)]
        await xhr.wait()

        body = '{"mocked":true}'
        assert events == [
            ("readystatechange", OPENED),
            ("readystatechange", LOADING),
            ("readystatechange", DONE),
            ("load", len(body), len(body)),
            ("loadend", len(body)),
        ]
        assert calls == []
        assert xhr.status == 200
        assert xhr.status_text == "OK"
        assert xhr.response_text == body
        assert xhr.get_response_header("Content-Type") == "application/json"

    async def test_state_is_final_inside_done_callback(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 404, "response": {"error": "missing"}})])
        xhr = XMLHttpRequest()
        seen: list = []

        def on_change():
            if xhr.ready_state == DONE:
                seen.append((xhr.status, xhr.status_text, xhr.response_text))

        xhr.onreadystatechange = on_change
        xhr.open("GET", "/m")
        xhr.send()
        await xhr.wait()
        assert seen == [(404, "Error", '{"error":"missing"}')]

    async def test_prefix_rule_serves_json(self, install, make_rule):
        install(
            [
                make_rule(
                    "api",
                    "/api/",
                    {"type": "replace", "responseType": "json", "response": {"ok": True}},
                    match="prefix",
                )
            ]
        )
        for url in ("/api/", "/api/users"):
            xhr = XMLHttpRequest()
            xhr.response_type = "json"
            xhr.open("GET", url)
            xhr.send()
            await xhr.wait()
            assert xhr.response_text == '{"ok":true}'
            assert xhr.response == {"ok": True}
            assert xhr.get_response_header("content-type") == "application/json"

    async def test_unmatched_request_goes_to_network(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 500})])
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        events = _recorder(xhr)
        xhr.open("GET", "https://api.x/other")
        xhr.send()
        await xhr.wait()
        assert calls == [("GET", "https://api.x/other")]
        assert [e[1] for e in events if e[0] == "readystatechange"] == [OPENED, HEADERS_RECEIVED, LOADING, DONE]
        assert xhr.status == 200

    async def test_method_is_taken_from_open(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 201}, method="POST")])
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        xhr.open("post", "/m")
        xhr.send('{"a": 1}')
        await xhr.wait()
        assert xhr.status == 201
        assert calls == []

    async def test_override_is_not_observable_before_delay(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "replace", "response": {}, "delay": 80})])
        xhr = XMLHttpRequest()
        xhr.open("GET", "/m")
        xhr.send()
        await asyncio.sleep(0.03)
        assert xhr.ready_state == OPENED
        await xhr.wait()
        assert xhr.ready_state == DONE

    async def test_delay_action_then_network(self, install, make_rule):
        install([make_rule("m", "https://api.x/m", {"type": "delay", "delay": 20})])
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        events = _recorder(xhr)
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await asyncio.sleep(0)
        assert calls == []
        await xhr.wait()
        assert calls == [("GET", "https://api.x/m")]
        assert [e[1] for e in events if e[0] == "readystatechange"] == [OPENED, HEADERS_RECEIVED, LOADING, DONE]

    async def test_patch_uses_network_body(self, install, make_rule):
        install([make_rule("m", "https://api.x/m", {"type": "patch", "patches": [{"path": "source", "value": "rule"}]})])
        calls: list = []
        xhr = XMLHttpRequest(transport=_server(calls=calls))
        xhr.response_type = "json"
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await xhr.wait()
        assert len(calls) == 1
        assert xhr.response == {"source": "rule"}

    async def test_patch_fallback_delivers_real_response(self, install, make_rule, activity):
        install([make_rule("m", "https://api.x/m", {"type": "patch", "patches": [{"path": "a", "value": 1}]})])
        xhr = XMLHttpRequest(transport=_server(body="plain text"))
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await xhr.wait()
        await asyncio.sleep(0)
        assert xhr.response_text == "plain text"
        assert xhr.status == 200
        assert len(activity.warnings()) == 1

    async def test_patch_network_error_fires_onerror(self, install, make_rule):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        install([make_rule("m", "https://api.x/m", {"type": "patch", "patches": [{"path": "a", "value": 1}]})])
        xhr = XMLHttpRequest(transport=httpx.MockTransport(handler))
        events = _recorder(xhr)
        xhr.open("GET", "https://api.x/m")
        xhr.send()
        await xhr.wait()
        assert ("error",) in events

    async def test_overrides_are_per_instance(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 503})])
        mocked = XMLHttpRequest()
        real = XMLHttpRequest(transport=_server())
        untouched = XMLHttpRequest()

        mocked.open("GET", "/m")
        real.open("GET", "https://api.x/real")
        mocked.send()
        real.send()
        await asyncio.gather(mocked.wait(), real.wait())

        assert mocked.status == 503
        assert real.status == 200
        assert untouched.status == 0
        assert untouched.ready_state == UNSENT
        assert "status" not in vars(mocked)
        assert isinstance(XMLHttpRequest.status, property)

    async def test_reused_instance_resolves_against_new_open(self, install, make_rule):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 503})])
        xhr = XMLHttpRequest(transport=_server())
        xhr.open("GET", "/m")
        xhr.send()
        await xhr.wait()
        assert xhr.status == 503
        xhr.open("GET", "https://api.x/real")
        xhr.send()
        await xhr.wait()
        assert xhr.status == 200

    async def test_raising_handler_does_not_stall_the_exchange(self, install, make_rule, caplog):
        install([make_rule("m", "/m", {"type": "replace", "response": {"mocked": True}})])
        xhr = XMLHttpRequest()
        states: list[int] = []
        finished: list[str] = []

        def on_change():
            states.append(xhr.ready_state)
            if xhr.ready_state == LOADING:
                raise ValueError("page bug")

        xhr.onreadystatechange = on_change
        xhr.onload = lambda event: finished.append("load")
        xhr.onloadend = lambda event: finished.append("loadend")
        xhr.open("GET", "/m")
        xhr.send()
        await asyncio.wait_for(xhr.wait(), 1)

        assert states == [OPENED, LOADING, DONE]
        assert finished == ["load", "loadend"]
        assert xhr.response_text == '{"mocked":true}'
        assert "onreadystatechange handler raised" in caplog.text

    def test_send_without_a_loop_leaves_the_request_unsent(self, install, make_rule, activity):
        install([make_rule("m", "/m", {"type": "status", "statusCode": 503})])
        xhr = XMLHttpRequest()
        xhr.open("GET", "/m")
        with pytest.raises(RuntimeError):
            xhr.send()
        assert xhr._sent is False
        assert activity.matches() == []
