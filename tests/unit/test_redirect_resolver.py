import logging
import socket
import threading
import time

import pytest

from helpers import get_free_port, requires_ipv6
from oauth2_forwarder.redirect_resolver import RedirectResolver, is_connection_refused
from oauth2_forwarder.results import ResolveError, ResolveRedirect, ResolveSuccess


@pytest.fixture
def resolver():
    return RedirectResolver(timeout=5)


def test_success_preserves_host_header(mock_app, resolver):
    """The request goes to 127.0.0.1 but keeps the Host the provider used."""
    app = mock_app([(200, {}, '<p>signed in</p>')])

    result = resolver.resolve(f"http://localhost:{app.port}/callback?code=ABC123")

    assert result == ResolveSuccess(body='<p>signed in</p>')
    method, path, host, _ = app.requests[0]
    assert method == 'GET'
    assert path == '/callback?code=ABC123'
    assert host == f"localhost:{app.port}"


def test_empty_body_is_none(mock_app, resolver):
    app = mock_app([(200, {}, '')])

    result = resolver.resolve(f"http://127.0.0.1:{app.port}/?code=x")

    assert isinstance(result, ResolveSuccess)
    assert result.body is None


def test_follows_loopback_redirect_chain(mock_app, resolver):
    """Relative and absolute loopback redirects are followed to the final page."""
    app = mock_app([])
    app.responses = [
        (302, {'Location': '/step2'}, ''),
        (301, {'Location': f"http://localhost:{app.port}/step3"}, ''),
        (302, {'Location': f"http://127.0.0.1:{app.port}/done"}, ''),
        (200, {}, 'finished'),
    ]

    result = resolver.resolve(f"http://localhost:{app.port}/?code=abc")

    assert result == ResolveSuccess(body='finished')
    assert [r[1] for r in app.requests] == ['/?code=abc', '/step2', '/step3', '/done']
    assert app.requests[3][2] == f"127.0.0.1:{app.port}"


def test_non_loopback_redirect_is_returned(mock_app, resolver):
    app = mock_app([(302, {'Location': 'https://example.com/signed-in'}, '')])

    result = resolver.resolve(f"http://localhost:{app.port}/?code=abc")

    assert result == ResolveRedirect(location='https://example.com/signed-in')
    assert len(app.requests) == 1


def test_non_loopback_url_is_not_fetched(resolver):
    result = resolver.resolve("https://example.com/callback?code=abc")

    assert result == ResolveRedirect(location="https://example.com/callback?code=abc")


def test_redirect_budget(mock_app):
    """Ten redirects are followed, the eleventh is an error."""
    app = mock_app([(302, {'Location': '/again'}, '')])
    resolver = RedirectResolver(timeout=5, max_redirects=10)

    result = resolver.resolve(f"http://127.0.0.1:{app.port}/")

    assert isinstance(result, ResolveError)
    assert "Too many redirects" in result.message
    assert len(app.requests) == 11


def test_redirect_without_location(mock_app, resolver):
    app = mock_app([(302, {}, '')])

    result = resolver.resolve(f"http://127.0.0.1:{app.port}/")

    assert isinstance(result, ResolveError)
    assert "Location" in result.message


def test_unexpected_status(mock_app, resolver):
    app = mock_app([(500, {}, 'oops')])

    result = resolver.resolve(f"http://127.0.0.1:{app.port}/cb")

    assert isinstance(result, ResolveError)
    assert f"Unexpected status code 500 from http://127.0.0.1:{app.port}/cb" == result.message


def test_nothing_listening(resolver):
    port = get_free_port()

    result = resolver.resolve(f"http://localhost:{port}/?code=abc")

    assert isinstance(result, ResolveError)


@requires_ipv6
def test_refused_on_both_families(resolver):
    port = get_free_port()

    result = resolver.resolve(f"http://localhost:{port}/?code=abc")

    assert isinstance(result, ResolveError)
    assert "Connection refused on both IPv4 and IPv6 loopback" in result.message


@requires_ipv6
def test_falls_back_to_ipv6(mock_app, resolver, caplog):
    """An application listening on [::1] only is reached after IPv4 is refused."""
    caplog.set_level(logging.DEBUG, logger='oauth2_forwarder')
    app = mock_app([(200, {}, 'ipv6 ok')], host='::1')

    result = resolver.resolve(f"http://localhost:{app.port}/?code=abc")

    assert result == ResolveSuccess(body='ipv6 ok')
    assert app.requests[0][2] == f"localhost:{app.port}"

    messages = [r.getMessage() for r in caplog.records]
    attempt = next(i for i, m in enumerate(messages) if m.startswith("Attempting IPv4 request to"))
    fallback = next(i for i, m in enumerate(messages) if m.startswith("IPv4 connection refused, falling back to IPv6"))
    assert attempt < fallback
    assert f"http://[::1]:{app.port}/?code=abc" in messages[fallback]


def test_timeout_is_not_retried(caplog):
    """A listener that accepts but never answers is reported, not retried on IPv6."""
    caplog.set_level(logging.DEBUG, logger='oauth2_forwarder')
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(('127.0.0.1', 0))
        listener.listen(1)
        port = listener.getsockname()[1]

        result = RedirectResolver(timeout=0.5).resolve(f"http://localhost:{port}/?code=abc")

    assert isinstance(result, ResolveError)
    assert not any("falling back to IPv6" in r.getMessage() for r in caplog.records)


def test_is_connection_refused_walks_chain():
    refused = ConnectionRefusedError(111, 'Connection refused')
    try:
        try:
            raise refused
        except ConnectionRefusedError as e:
            raise RuntimeError("wrapped") from e
    except RuntimeError as wrapped:
        outer = ValueError("outer", wrapped)

    assert is_connection_refused(outer)
    assert not is_connection_refused(ValueError("nope"))
    assert not is_connection_refused(TimeoutError("slow"))


class SlowApplication:
    """Answers every request with headers at once and then one body byte at a time."""

    def __init__(self, body=b'abcdef', delay=0.4):
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.bind(('127.0.0.1', 0))
        self.listener.listen(5)
        self.port = self.listener.getsockname()[1]
        self.body = body
        self.delay = delay
        self.thread = threading.Thread(target=self._serve)
        self.thread.daemon = True
        self.thread.start()

    def _serve(self):
        try:
            conn, _ = self.listener.accept()
        except OSError:
            return
        with conn:
            try:
                conn.recv(65536)
                conn.sendall(b"HTTP/1.1 200 OK\r\nContent-Length: %d\r\n\r\n" % (len(self.body),))
                for i in range(len(self.body)):
                    time.sleep(self.delay)
                    conn.sendall(self.body[i:i + 1])
            except OSError:
                pass

    def close(self):
        self.listener.close()


def test_attempt_has_a_total_deadline(caplog):
    """A response trickling in byte by byte is cut off at the timeout, not retried."""
    caplog.set_level(logging.DEBUG, logger='oauth2_forwarder')
    app = SlowApplication()
    try:
        started = time.monotonic()
        result = RedirectResolver(timeout=1).resolve(f"http://localhost:{app.port}/?code=abc")
        elapsed = time.monotonic() - started
    finally:
        app.close()

    assert isinstance(result, ResolveError)
    assert "within 1 seconds" in result.message
    assert elapsed < 2
    assert not any("falling back to IPv6" in r.getMessage() for r in caplog.records)
