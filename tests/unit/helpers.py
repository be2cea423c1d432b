"""Shared helpers for the unit tests: scripted servers and a fake browser."""

import http.server
import json
import socket
import threading
import urllib.parse

import pytest
import requests


TEST_REQUEST_URL = (
    "https://login.microsoftonline.com/f6e8a999-5111-487e-a999-555557d56ac6/oauth2/v2.0/authorize"
    "?client_id=d68b9777-83ks-4efe-h47x-a0c8b92c5f5c"
    "&scope=499b84ac-1321-427f-aa17-267ca6975798%2Fuser_impersonation%20openid%20profile%20offline_access"
    "&redirect_uri={redirect_uri}"
    "&client-request-id=c2eabe61-f890-4463-b322-1af5d42783b3"
    "&response_mode=query&response_type=code"
    "&code_challenge=5i8EjAJjrgQ2-3QqQpmxERhTTmKzcCfNG59mrGgPiyE&code_challenge_method=S256"
)


def build_auth_url(redirect_uri):
    return TEST_REQUEST_URL.format(redirect_uri=urllib.parse.quote(redirect_uri, safe=''))


def get_free_port(host='127.0.0.1', family=socket.AF_INET):
    with socket.socket(family, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def ipv6_available():
    if not socket.has_ipv6:
        return False
    try:
        with socket.socket(socket.AF_INET6, socket.SOCK_STREAM) as s:
            s.bind(('::1', 0))
        return True
    except OSError:
        return False


requires_ipv6 = pytest.mark.skipif(not ipv6_available(), reason="IPv6 loopback not available")


class _IPv6Server(http.server.ThreadingHTTPServer):
    address_family = socket.AF_INET6


class MockApplication:
    """
    Scripted loopback HTTP server standing in for the application in the container.

    Each request consumes the next (status, headers, body) response; the last
    one repeats. Requests are recorded as (method, path, host header, body).
    """

    def __init__(self, responses, host='127.0.0.1', port=0):
        self.responses = list(responses)
        self.requests = []
        self._lock = threading.Lock()
        outer = self

        class Handler(http.server.BaseHTTPRequestHandler):
            def _respond(self):
                length = int(self.headers.get('Content-Length') or 0)
                body = self.rfile.read(length) if length else b''
                with outer._lock:
                    outer.requests.append((self.command, self.path, self.headers.get('Host'), body))
                    index = min(len(outer.requests), len(outer.responses)) - 1
                    status, headers, payload = outer.responses[index]
                if callable(payload):
                    payload = payload(self)
                data = payload.encode('utf-8') if isinstance(payload, str) else (payload or b'')
                self.send_response(status)
                for name, value in (headers or {}).items():
                    self.send_header(name, value)
                self.send_header('Content-Length', str(len(data)))
                self.end_headers()
                self.wfile.write(data)

            do_GET = _respond
            do_POST = _respond

            def log_message(self, format, *args):
                pass

        server_class = _IPv6Server if ':' in host else http.server.ThreadingHTTPServer
        self.server = server_class((host, port), Handler)
        self.port = self.server.server_address[1]
        self.thread = threading.Thread(target=self.server.serve_forever, kwargs={'poll_interval': 0.05})
        self.thread.daemon = True
        self.thread.start()

    def close(self):
        self.server.shutdown()
        self.server.server_close()


def json_response(status, body):
    return (status, {'Content-Type': 'application/json'}, json.dumps(body))


class FakeBrowser:
    """
    Stands in for the user's browser: "opening" an authorization URL follows
    the provider redirect straight back to the redirect_uri with a code.

    The request runs on a thread because the callback response is held open
    until the flow completes.
    """

    def __init__(self, code='ABC123'):
        self.code = code
        self.opened = []
        self.responses = []
        self.errors = []
        self.threads = []
        self.session = requests.Session()
        self.session.trust_env = False

    def callback_url_for(self, authorization_url):
        query = dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(authorization_url).query))
        redirect_uri = query['redirect_uri']
        if urllib.parse.urlsplit(redirect_uri).path == '':
            redirect_uri += '/'
        separator = '&' if '?' in redirect_uri else '?'
        return f"{redirect_uri}{separator}code={self.code}"

    def open(self, url):
        self.opened.append(url)
        self.visit(self.callback_url_for(url))

    def visit(self, url):
        def run():
            try:
                self.responses.append(self.session.get(url, allow_redirects=False, timeout=10))
            except requests.exceptions.RequestException as e:
                self.errors.append(e)

        thread = threading.Thread(target=run)
        thread.daemon = True
        thread.start()
        self.threads.append(thread)

    def wait(self, timeout=5):
        for thread in self.threads:
            thread.join(timeout)
        return self.responses
