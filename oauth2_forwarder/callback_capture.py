"""
Host-side capture of the provider's redirect.

capture() stands up a throwaway HTTP listener on the redirect URI's port,
opens the user's browser at the authorization URL and waits for the provider
to send the browser back. The first request received is the callback. Its URL
is returned together with a fresh request id and a `complete` function, while
the browser connection itself is left unanswered: the forwarder still has to
deliver the callback to the real application, and the browser is only told
how that went when `complete` is finally called.
"""

import html
import http.server
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from .constants import CAPTURE_TIMEOUT, IPV4_LOOPBACK
from .results import RedirectResult, ResolveError, ResolveRedirect, ResolveSuccess
from .utils import ForwarderException


DEFAULT_SUCCESS_MESSAGE = "Authentication completed. You may close this page now."

PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>OAuth2 Forwarder - {title}</title>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
               background: #f5f5f7; color: #1d1d1f; display: flex; align-items: center;
               justify-content: center; min-height: 100vh; margin: 0; }}
        .container {{ background: #fff; border-radius: 12px; padding: 40px; max-width: 480px;
                      box-shadow: 0 4px 16px rgba(0, 0, 0, 0.08); text-align: center; }}
        .title {{ font-size: 22px; font-weight: 600; margin-bottom: 16px; color: {color}; }}
        .message {{ font-size: 15px; line-height: 1.5; white-space: pre-wrap; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="title">{title}</div>
        <div class="message">{message}</div>
    </div>
</body>
</html>
"""


class CaptureError(ForwarderException):
    """The callback could not be captured."""
    pass


class CaptureTimeoutError(CaptureError):
    """No callback arrived before the capture timeout."""
    pass


@dataclass
class CapturedCallback:
    callback_url: str
    request_id: str
    complete: Callable[[RedirectResult], None]


def render_page(title: str, message: str, color: str = '#1d1d1f') -> str:
    return PAGE_TEMPLATE.format(title=html.escape(title), message=html.escape(message), color=color)


class HeldResponse:
    """
    The unanswered browser connection of a captured callback.

    The handler thread that accepted the connection blocks in wait() until
    complete() writes the final response from whichever thread holds the
    completion report. complete() only ever writes once.
    """

    def __init__(self, handler: 'CallbackRequestHandler', logger):
        self._handler = handler
        self._logger = logger
        self._lock = threading.Lock()
        self._used = False
        self._done = threading.Event()

    def complete(self, result: RedirectResult) -> None:
        with self._lock:
            if self._used:
                self._logger.warning("Browser response was already completed, ignoring")
                return
            self._used = True

        try:
            if isinstance(result, ResolveRedirect):
                self._logger.debug(f"Redirecting browser to {result.location}")
                self._handler.send_redirect(result.location)
            elif isinstance(result, ResolveSuccess):
                self._logger.debug("Answering browser with success page")
                if result.body:
                    self._handler.send_html(200, result.body)
                else:
                    self._handler.send_html(200, render_page("Authentication Successful", DEFAULT_SUCCESS_MESSAGE, '#1a7f37'))
            elif isinstance(result, ResolveError):
                self._logger.debug(f"Answering browser with error: {result.message}")
                self._handler.send_html(500, render_page("Authentication Failed", result.message, '#cf222e'))
            else:
                raise TypeError(f"Not a redirect result: {result!r}")
        except OSError as e:
            # The browser went away while we were waiting.
            self._logger.warning(f"Could not write browser response: {e}")
        finally:
            self._done.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)


class _CaptureState:
    """Listening -> Captured | TimedOut, decided once under a lock."""

    LISTENING = 'listening'
    CAPTURED = 'captured'
    FAILED = 'failed'
    TIMED_OUT = 'timed_out'

    def __init__(self):
        self.lock = threading.Lock()
        self.status = self.LISTENING
        self.event = threading.Event()
        self.callback_url = None
        self.held = None
        self.error = None

    def capture(self, callback_url: str, held: HeldResponse) -> bool:
        with self.lock:
            if self.status != self.LISTENING:
                return False
            self.status = self.CAPTURED
            self.callback_url = callback_url
            self.held = held
        self.event.set()
        return True

    def fail(self, error: Exception) -> bool:
        with self.lock:
            if self.status != self.LISTENING:
                return False
            self.status = self.FAILED
            self.error = error
        self.event.set()
        return True

    def time_out(self) -> bool:
        with self.lock:
            if self.status != self.LISTENING:
                return False
            self.status = self.TIMED_OUT
        return True


class CallbackRequestHandler(http.server.BaseHTTPRequestHandler):
    """Handler for the provider's redirect on the temporary listener."""

    # Idle connections, such as browser preconnects, give up after this many seconds.
    timeout = 60

    def __init__(self, *args, state=None, logger=None, **kwargs):
        self.state = state
        self.logger = logger
        super().__init__(*args, **kwargs)

    def do_GET(self):
        """Handle the browser's GET from the provider redirect."""
        self._capture()

    def do_POST(self):
        """Handle a form_post redirect; only the URL is relayed."""
        length = int(self.headers.get('Content-Length') or 0)
        if length:
            self.rfile.read(length)
        self._capture()

    def _capture(self):
        self.logger.debug(f"Received a {self.command} request")
        self.close_connection = True

        host = self.headers.get('Host')
        if not host:
            reason = "Missing Host header in redirect request"
            self.logger.error(reason)
            if self.state.fail(CaptureError(reason, code=400)):
                self.send_html(400, render_page("Authentication Failed", reason, '#cf222e'))
            else:
                self.send_html(400, render_page("Authentication Failed", "Callback already handled", '#cf222e'))
            return

        callback_url = f"http://{host}{self.path}"
        held = HeldResponse(self, self.logger)
        if not self.state.capture(callback_url, held):
            self.logger.debug(f"Ignoring extra request for {self.path}, callback already handled")
            self.send_html(404, render_page("Not Found", "Callback already handled", '#cf222e'))
            return

        self.logger.debug(f"Received request url: {callback_url}")
        # Keep this connection open until the completion report arrives.
        held.wait()

    def send_redirect(self, location: str):
        self.send_response(302)
        self.send_header('Location', location)
        self.send_header('Content-Length', '0')
        self.end_headers()
        self.wfile.flush()

    def send_html(self, status: int, body: str):
        payload = body.encode('utf-8')
        self.send_response(status)
        self.send_header('Content-Type', 'text/html; charset=utf-8')
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)
        self.wfile.flush()

    def log_message(self, format, *args):
        """Route access logs to the debug logger."""
        self.logger.debug(format % args)


class _CaptureServer(http.server.ThreadingHTTPServer):
    daemon_threads = True
    # Held connections must not block closing the listening socket.
    block_on_close = False


class CallbackCapture:
    """Captures one provider redirect per capture() call."""

    def __init__(self, open_browser: Callable[[str], None], logger=None, timeout: float = CAPTURE_TIMEOUT,
                 listen_host: str = IPV4_LOOPBACK):
        """
        Args:
            open_browser: Opens a URL in the user's browser
            logger: Receives debug output
            timeout: Seconds to wait for the provider redirect
            listen_host: Address the temporary listener binds to
        """
        self.open_browser = open_browser
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.timeout = timeout
        self.listen_host = listen_host

    def capture(self, authorization_url: str, listen_port: int) -> CapturedCallback:
        """
        Open the browser and wait for the provider to redirect back.

        Args:
            authorization_url: URL to open in the browser
            listen_port: Port of the application's redirect URI

        Returns:
            The captured callback, with the browser response still pending

        Raises:
            CaptureError: If the listener cannot bind or the callback is malformed
            CaptureTimeoutError: If no callback arrives in time
        """
        state = _CaptureState()
        handler = lambda *args, **kwargs: CallbackRequestHandler(
            *args,
            state=state,
            logger=self.logger,
            **kwargs
        )

        self.logger.debug(f"Starting temporary redirect server on port {listen_port}...")
        try:
            server = _CaptureServer((self.listen_host, listen_port), handler)
        except OSError as e:
            raise CaptureError(f"Could not listen on {self.listen_host}:{listen_port}: {e}")

        server_thread = threading.Thread(target=server.serve_forever, kwargs={'poll_interval': 0.1})
        server_thread.daemon = True
        server_thread.start()

        try:
            self.logger.debug("Opening browser for interactive login...")
            # Text-mode browsers block until they exit; the timeout starts now regardless.
            opener = threading.Thread(target=self._open_browser, args=(authorization_url,), name='open-browser')
            opener.daemon = True
            opener.start()

            if not state.event.wait(self.timeout) and state.time_out():
                self.logger.error(f"No callback received within {self.timeout} seconds")
                raise CaptureTimeoutError(f"Timed out after {self.timeout} seconds waiting for the OAuth callback")
        finally:
            self.logger.debug("Closing temporary redirect server")
            server.shutdown()
            server.server_close()

        if state.status == _CaptureState.FAILED:
            raise state.error

        request_id = str(uuid.uuid4())
        self.logger.debug(f"Captured callback for request {request_id}")
        return CapturedCallback(
            callback_url=state.callback_url,
            request_id=request_id,
            complete=state.held.complete,
        )

    def _open_browser(self, url: str) -> None:
        try:
            self.open_browser(url)
        except Exception as e:
            # The user may still reach the URL some other way.
            self.logger.warning(f"Failed to open browser: {e}")
