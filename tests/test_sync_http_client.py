from __future__ import annotations

import json

import pytest

from sessionmem.sync import http_client


class _Resp:
    def __init__(self, status: int, raw: bytes) -> None:
        self.status = status
        self._raw = raw

    def read(self) -> bytes:
        return self._raw


class _Conn:
    def __init__(self, status: int = 200, raw: bytes = b"") -> None:
        self.closed = False
        self.calls: list[tuple] = []
        self._resp = _Resp(status, raw)

    def request(self, method, path, body=None, headers=None) -> None:
        self.calls.append((method, path, body, headers))

    def getresponse(self) -> _Resp:
        return self._resp

    def close(self) -> None:
        self.closed = True


class _ConnRequestFails(_Conn):
    def request(self, method, path, body=None, headers=None) -> None:
        raise ConnectionRefusedError("refused")


def test_request_json_posts_json_and_decodes(monkeypatch) -> None:
    conn = _Conn(200, b'{"success": true, "synced": {"sessions": 1}}')
    monkeypatch.setattr(http_client, "HTTPConnection", lambda *a, **k: conn)

    status, body = http_client.request_json(
        "POST",
        "http://sync.local:8080/v1/sync?dry=1",
        headers=http_client.bearer_headers("secret"),
        body={"sessions": [{"local_session_id": "s1"}]},
    )

    assert status == 200
    assert body == {"success": True, "synced": {"sessions": 1}}
    method, path, sent, headers = conn.calls[0]
    assert method == "POST"
    assert path == "/v1/sync?dry=1"
    assert json.loads(sent) == {"sessions": [{"local_session_id": "s1"}]}
    assert headers["Authorization"] == "Bearer secret"
    assert headers["Content-Type"] == "application/json"
    assert headers["Content-Length"] == str(len(sent))
    assert conn.closed is True


def test_request_json_uses_https_connection(monkeypatch) -> None:
    conn = _Conn(204)
    seen: dict = {}

    def _https(host, port, timeout):
        seen.update(host=host, port=port, timeout=timeout)
        return conn

    monkeypatch.setattr(http_client, "HTTPSConnection", _https)
    status, body = http_client.request_json("GET", "https://api.example.com/status", timeout_s=2.5)
    assert (status, body) == (204, None)
    assert seen == {"host": "api.example.com", "port": 443, "timeout": 2.5}


def test_request_json_wraps_non_json_bodies(monkeypatch) -> None:
    conn = _Conn(502, b"<html>Bad gateway</html>")
    monkeypatch.setattr(http_client, "HTTPConnection", lambda *a, **k: conn)
    status, body = http_client.request_json("GET", "http://sync.local/x")
    assert status == 502
    assert body == {"error": "non_json_response: <html>Bad gateway</html>"}


def test_request_json_flags_unexpected_json_types(monkeypatch) -> None:
    conn = _Conn(200, b"[1, 2]")
    monkeypatch.setattr(http_client, "HTTPConnection", lambda *a, **k: conn)
    assert http_client.request_json("GET", "http://sync.local/x") == (
        200,
        {"error": "unexpected_json_type: list"},
    )


def test_request_json_closes_connection_when_request_raises(monkeypatch) -> None:
    conn = _ConnRequestFails()
    monkeypatch.setattr(http_client, "HTTPConnection", lambda *a, **k: conn)

    with pytest.raises(ConnectionRefusedError):
        http_client.request_json("GET", "http://127.0.0.1:7337/v1/status")

    assert conn.closed is True


def test_request_json_requires_hostname() -> None:
    with pytest.raises(ValueError, match="missing hostname"):
        http_client.request_json("GET", "not a url")
