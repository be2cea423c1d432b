"""
Host-side HTTP endpoint of the relay.

    POST /           {"url": "<authorization url>"}
                     -> 200 {"url": "<callback url>", "requestId": "<id>"}
    POST /complete   {"requestId": "<id>", "result": <result>}
                     -> 200 {"status": "ok"}

Every path other than /complete starts a flow. Errors are answered with
{"error": "<reason>"}.
"""

import http.server
import json
import logging
import threading
from typing import Callable, Optional

from .callback_capture import CallbackCapture, CaptureError
from .constants import COMPLETION_PATH, COMPLETION_TTL, DEFAULT_HTTP_PORT, DEFAULT_PROXY_HOST
from .loopback import PortError, extract_port
from .oauth_url import UrlValidationError, parse_authorization_url
from .registry import PendingRequestRegistry
from .results import InvalidResultError, ResolveError, result_from_dict
from .utils import ForwarderException
from .whitelist import get_hostname


class ProxyRequestHandler(http.server.BaseHTTPRequestHandler):
    """Routes start and completion requests to the owning CredentialProxy."""

    def __init__(self, *args, proxy=None, **kwargs):
        self.proxy = proxy
        super().__init__(*args, **kwargs)

    def do_POST(self):
        logger = self.proxy.logger
        logger.debug(f"Request received at {self.headers.get('Host')} for {self.path}")

        path = self.path.split('?', 1)[0]
        if path == COMPLETION_PATH:
            self.proxy.handle_complete(self)
        else:
            self.proxy.handle_start(self)

    def read_json(self):
        """Read and decode the request body, raising ValueError when it is not JSON."""
        length = int(self.headers.get('Content-Length') or 0)
        raw = self.rfile.read(length) if length else b''
        self.proxy.logger.debug(f"Received body: {raw.decode('utf-8', errors='replace')}")
        return json.loads(raw.decode('utf-8'))

    def send_json(self, status: int, body: dict):
        payload = json.dumps(body).encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def send_failure(self, status: int, reason: str):
        self.proxy.logger.debug(f"Error: {reason}")
        self.send_json(status, {'error': reason})

    def log_message(self, format, *args):
        """Route access logs to the debug logger."""
        self.proxy.logger.debug(format % args)


class _ProxyServer(http.server.ThreadingHTTPServer):
    daemon_threads = True


class CredentialProxy:
    """The proxy: starts interactive logins and accepts completion reports."""

    def __init__(self, capture: CallbackCapture, host: str = DEFAULT_PROXY_HOST, port: int = 0,
                 is_allowed: Optional[Callable[[str], bool]] = None, passthrough: bool = False,
                 open_browser: Optional[Callable[[str], None]] = None, completion_ttl: float = COMPLETION_TTL,
                 logger=None):
        """
        Args:
            capture: Captures the provider redirect for each started flow
            host: Address to listen on
            port: Port to listen on, 0 picks a free one
            is_allowed: Allow-list predicate on the authorization URL
            passthrough: Open URLs that fail validation in the browser as they are
            open_browser: Used by passthrough mode
            completion_ttl: Seconds a captured callback waits for its completion report
            logger: Receives debug output
        """
        self.capture = capture
        self.host = host
        self.port = port
        self.is_allowed = is_allowed if is_allowed is not None else (lambda url: True)
        self.passthrough = passthrough
        self.open_browser = open_browser if open_browser is not None else capture.open_browser
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.registry = PendingRequestRegistry(ttl=completion_ttl, logger=self.logger)
        self.server = None
        self.server_thread = None

    def start(self) -> int:
        """
        Bind the listening socket and serve in a background thread.

        Returns:
            The port the proxy listens on

        Raises:
            OSError: If the socket cannot be bound
        """
        handler = lambda *args, **kwargs: ProxyRequestHandler(
            *args,
            proxy=self,
            **kwargs
        )

        self.logger.debug("Starting credential proxy...")
        self.server = _ProxyServer((self.host, self.port), handler)
        self.port = self.server.server_address[1]

        self.server_thread = threading.Thread(target=self.server.serve_forever, kwargs={'poll_interval': 0.2})
        self.server_thread.daemon = True
        self.server_thread.start()
        self.logger.info(f"Credential proxy listening on {self.host}:{self.port}")
        return self.port

    def close(self) -> None:
        """Answer every pending browser with an error, then stop listening."""
        self.registry.close()
        if self.server:
            server = self.server
            self.server = None
            server.shutdown()
            server.server_close()
        if self.server_thread and self.server_thread.is_alive():
            self.server_thread.join(timeout=1)
        self.logger.debug("Credential proxy closed")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def handle_start(self, request: ProxyRequestHandler) -> None:
        try:
            body = request.read_json()
        except ValueError as e:
            request.send_failure(400, f"Invalid JSON body: {e}")
            return

        url = body.get('url') if isinstance(body, dict) else None
        if not isinstance(url, str) or not url:
            request.send_failure(400, "Received body does not contain a 'url' property")
            return

        try:
            auth_request = parse_authorization_url(url)
        except UrlValidationError as e:
            if self.passthrough:
                self.logger.info(f"Not an OAuth2 request, opening it in the browser as is: {e}")
                try:
                    self.open_browser(url)
                except Exception as browser_error:
                    self.logger.warning(f"Failed to open browser: {browser_error}")
            request.send_failure(400, e.message)
            return

        if not self.is_allowed(url):
            domain = get_hostname(url) or url
            self.logger.warning(f"Rejected authorization request for domain not in whitelist: {domain}")
            request.send_failure(403, f"Domain not in whitelist: {domain}")
            return

        try:
            port = extract_port(auth_request.redirect_uri)
        except PortError as e:
            request.send_failure(400, e.message)
            return
        if port is None:
            port = DEFAULT_HTTP_PORT
        self.logger.debug(f"Using port number: {port}")

        try:
            captured = self.capture.capture(url, port)
        except CaptureError as e:
            self.logger.error(f"Interactive login failed: {e}")
            request.send_failure(500, f"Interactive login failed: {e}")
            return

        try:
            self.registry.add(captured.request_id, captured.complete)
        except ForwarderException as e:
            captured.complete(ResolveError(message=str(e)))
            request.send_failure(500, f"Could not register request: {e}")
            return
        self.logger.debug("Interactive login completed")
        request.send_json(200, {'url': captured.callback_url, 'requestId': captured.request_id})

    def handle_complete(self, request: ProxyRequestHandler) -> None:
        try:
            body = request.read_json()
        except ValueError as e:
            request.send_failure(400, f"Invalid JSON body: {e}")
            return

        if not isinstance(body, dict):
            request.send_failure(400, "Completion report must be a JSON object")
            return

        request_id = body.get('requestId')
        if not isinstance(request_id, str) or not request_id:
            request.send_failure(400, "Completion report does not contain a 'requestId' property")
            return
        if 'result' not in body:
            request.send_failure(400, "Completion report does not contain a 'result' property")
            return

        try:
            result = result_from_dict(body['result'])
        except InvalidResultError as e:
            request.send_failure(400, f"Invalid result: {e}")
            return

        if not self.registry.complete(request_id, result):
            request.send_failure(404, f"No pending request found for id {request_id}")
            return

        request.send_json(200, {'status': 'ok'})
