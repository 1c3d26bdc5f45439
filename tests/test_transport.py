from __future__ import annotations

import json

import pytest
import requests

from scrapshard.transport import FormFile, RequestsTransport, TransportError


class DummyResponse:
    def __init__(self, status_code: int, body: bytes, reason: str = "OK") -> None:
        self.status_code = status_code
        self.reason = reason
        self.content = body
        self.encoding: str | None = None

    def json(self) -> object:
        return json.loads(self.content.decode("utf-8"))

    @property
    def text(self) -> str:
        return self.content.decode(self.encoding or "latin-1")


class DummySession:
    def __init__(self, response: DummyResponse | Exception) -> None:
        self.response = response
        self.calls: list[tuple[str, str, dict | None, float | None]] = []
        self.closed = False

    def request(self, method, url, *, files=None, timeout=None):
        self.calls.append((method, url, files, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response

    def close(self) -> None:
        self.closed = True


def _transport(monkeypatch, response) -> tuple[RequestsTransport, DummySession]:
    session = DummySession(response)
    monkeypatch.setattr("scrapshard.transport.requests.Session", lambda: session)
    return RequestsTransport(timeout=7.0), session


def test_json_response(monkeypatch) -> None:
    transport, session = _transport(monkeypatch, DummyResponse(200, b'{"data": "t"}'))
    response = transport("GET", "http://host/?a=token&f=json")
    assert response.status == 200
    assert response.status_text == "OK"
    assert response.payload == {"data": "t"}
    assert session.calls == [("GET", "http://host/?a=token&f=json", None, 7.0)]


def test_non_json_body_yields_none(monkeypatch) -> None:
    transport, _ = _transport(monkeypatch, DummyResponse(502, b"<html>bad gateway</html>", "Bad Gateway"))
    response = transport("GET", "http://host/")
    assert response.status == 502
    assert response.status_text == "Bad Gateway"
    assert response.payload is None


def test_text_response_is_utf8(monkeypatch) -> None:
    body = "scrapbook.meta({\"a\": \"雨\"})".encode("utf-8")
    transport, _ = _transport(monkeypatch, DummyResponse(200, body))
    response = transport("GET", "http://host/tree/meta.js", response_type="text")
    assert response.payload == "scrapbook.meta({\"a\": \"雨\"})"


def test_form_is_sent_as_multipart(monkeypatch) -> None:
    transport, session = _transport(monkeypatch, DummyResponse(200, b"{}"))
    transport(
        "POST",
        "http://host/tree/toc.js?a=upload&f=json",
        form={"token": "abc", "upload": FormFile("toc.js", "scrapbook.toc({})")},
    )
    _, _, files, _ = session.calls[0]
    assert files == {
        "token": (None, "abc"),
        "upload": ("toc.js", b"scrapbook.toc({})", "application/javascript"),
    }


def test_request_exception_becomes_transport_error(monkeypatch) -> None:
    transport, _ = _transport(monkeypatch, requests.ConnectionError("refused"))
    with pytest.raises(TransportError) as excinfo:
        transport("GET", "http://host/")
    assert "http://host/" in str(excinfo.value)


def test_close_closes_session(monkeypatch) -> None:
    transport, session = _transport(monkeypatch, DummyResponse(200, b"{}"))
    transport.close()
    assert session.closed
