"""Tests for the upstream HTTP client."""

import asyncio
import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import httpx
import pytest

import upstream

from helpers import RecordingTransport, failing_transport, gemini_body
from models import TransportKind, UpstreamContent
from settings import Settings
from upstream import (
    CONNECT_TIMEOUT_SECONDS,
    TOTAL_TIMEOUT_SECONDS,
    TransportError,
    build_body,
    build_client,
    send,
)

CONTENTS = [
    UpstreamContent(role="user", text="Hello"),
    UpstreamContent(role="model", text="Hi there"),
    UpstreamContent(role="user", text="Hi"),
]


def test_build_body_uses_wire_field_names():
    body = build_body(CONTENTS)
    assert body["generationConfig"]["maxOutputTokens"] == 1000
    assert body["generationConfig"]["temperature"] == 0.7
    assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
    assert [c["parts"] for c in body["contents"]] == [
        [{"text": "Hello"}],
        [{"text": "Hi there"}],
        [{"text": "Hi"}],
    ]


def test_send_posts_to_generate_content(settings, reply_transport):
    raw = send(CONTENTS, settings, transport=reply_transport)

    assert raw.status_code == 200
    request = reply_transport.requests[-1]
    assert request.method == "POST"
    assert request.url.path == "/v1beta/models/gemini-2.0-flash-lite:generateContent"
    assert request.url.host == "generativelanguage.googleapis.com"
    assert request.url.params["key"] == "test-key-123"
    assert request.headers["User-Agent"] == "ChatBot/1.0"
    assert reply_transport.last_json()["contents"][-1]["parts"][0]["text"] == "Hi"


def test_send_uses_configured_base_url(reply_transport):
    config = Settings(api_key="k", model_name="gemini-x", base_url="http://localhost:9000/models/")
    send(CONTENTS, config, transport=reply_transport)
    assert str(reply_transport.requests[-1].url).startswith("http://localhost:9000/models/gemini-x:generateContent")


@pytest.mark.parametrize("status", [400, 403, 429, 500, 503])
def test_non_200_status_is_upstream_http_error(settings, status, caplog):
    transport = RecordingTransport(lambda request: httpx.Response(status, text='{"error": "quota"}'))
    with pytest.raises(TransportError) as info:
        send(CONTENTS, settings, transport=transport)
    assert info.value.kind is TransportKind.UPSTREAM_HTTP_ERROR
    assert info.value.status_code == status
    assert "quota" in caplog.text


def test_redirects_are_not_followed(settings):
    transport = RecordingTransport(
        lambda request: httpx.Response(302, headers={"Location": "https://elsewhere.example/"})
    )
    with pytest.raises(TransportError) as info:
        send(CONTENTS, settings, transport=transport)
    assert info.value.status_code == 302
    assert len(transport.requests) == 1


@pytest.mark.parametrize("exc_type", [httpx.ConnectTimeout, httpx.ReadTimeout, httpx.PoolTimeout])
def test_timeouts_are_reported_without_retry(settings, exc_type):
    transport = failing_transport(exc_type)
    with pytest.raises(TransportError) as info:
        send(CONTENTS, settings, transport=transport)
    assert info.value.kind is TransportKind.TIMEOUT
    assert len(transport.requests) == 1


@pytest.mark.parametrize("exc_type", [httpx.ConnectError, httpx.ReadError, httpx.RemoteProtocolError])
def test_connection_failures(settings, exc_type):
    with pytest.raises(TransportError) as info:
        send(CONTENTS, settings, transport=failing_transport(exc_type))
    assert info.value.kind is TransportKind.CONNECTION_FAILED


def test_key_never_logged(settings, caplog):
    caplog.set_level("DEBUG")
    transport = RecordingTransport(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(TransportError):
        send(CONTENTS, settings, transport=transport)
    with pytest.raises(TransportError):
        send(CONTENTS, settings, transport=failing_transport(httpx.ConnectError))
    assert "test-key-123" not in caplog.text


def test_client_timeouts_and_redirect_policy(settings):
    client = build_client(settings)
    try:
        assert client.timeout.connect == CONNECT_TIMEOUT_SECONDS
        assert client.timeout.read == TOTAL_TIMEOUT_SECONDS
        assert client.follow_redirects is False
    finally:
        asyncio.run(client.aclose())


def test_success_body_is_returned_verbatim(settings):
    body = gemini_body("ok")
    transport = RecordingTransport(lambda request: httpx.Response(200, text=body))
    assert send(CONTENTS, settings, transport=transport).body == body


def test_key_not_logged_at_default_level(settings, reply_transport, caplog):
    caplog.set_level("INFO")
    send(CONTENTS, settings, transport=reply_transport)
    assert "test-key-123" not in caplog.text


class _TricklingHandler(BaseHTTPRequestHandler):
    """Sends headers at once, then one body byte every quarter second."""

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", "40")
        self.end_headers()
        try:
            for _ in range(40):
                self.wfile.write(b" ")
                self.wfile.flush()
                time.sleep(0.25)
        except (BrokenPipeError, ConnectionResetError):
            pass

    def log_message(self, format, *args):
        pass


@pytest.fixture
def trickling_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _TricklingHandler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}/v1beta/models"
    server.shutdown()
    server.server_close()


def test_slow_body_hits_total_deadline(trickling_server, monkeypatch):
    monkeypatch.setattr(upstream, "TOTAL_TIMEOUT_SECONDS", 1.0)
    monkeypatch.setattr(upstream, "CONNECT_TIMEOUT_SECONDS", 0.5)
    config = Settings(api_key="k", base_url=trickling_server)

    started = time.monotonic()
    with pytest.raises(TransportError) as info:
        send(CONTENTS, config)
    elapsed = time.monotonic() - started

    assert info.value.kind is TransportKind.TIMEOUT
    assert elapsed < 3.0


@pytest.fixture
def header_drip_server():
    """Accepts one connection and sends its response headers a byte at a time, forever."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    stop = threading.Event()

    def _serve():
        try:
            conn, _ = listener.accept()
        except OSError:
            return
        with conn:
            conn.recv(65536)
            prefix = b"HTTP/1.1 200 OK\r\nX-Slow: "
            sent = 0
            while not stop.is_set():
                chunk = prefix[sent:sent + 1] or b"a"
                try:
                    conn.sendall(chunk)
                except OSError:
                    return
                sent += 1
                time.sleep(0.25)

    thread = threading.Thread(target=_serve, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{listener.getsockname()[1]}/v1beta/models"
    stop.set()
    listener.close()
    thread.join(timeout=2)


def test_slow_headers_hit_total_deadline(header_drip_server, monkeypatch):
    monkeypatch.setattr(upstream, "TOTAL_TIMEOUT_SECONDS", 1.0)
    monkeypatch.setattr(upstream, "CONNECT_TIMEOUT_SECONDS", 0.5)
    config = Settings(api_key="k", base_url=header_drip_server)

    started = time.monotonic()
    with pytest.raises(TransportError) as info:
        send(CONTENTS, config)
    elapsed = time.monotonic() - started

    assert info.value.kind is TransportKind.TIMEOUT
    assert elapsed < 2.5
