"""
Delivery of a captured OAuth callback to the application's loopback listener.

The callback URL names whatever loopback host the provider redirected to, but
the listener inside the isolated environment may be bound to IPv4 only or to
IPv6 only. The resolver dials 127.0.0.1 first and falls back to [::1] when the
connection is refused, always sending the original Host header so the
application's own host checks still pass.

Redirects are followed only while they stay on the loopback interface. A hop
to any other host is handed back to the caller, which lets the user's real
browser follow it.
"""

import errno
import logging
import queue
import threading
import urllib.parse
from typing import Optional

import requests

from .constants import IPV4_LOOPBACK, IPV6_LOOPBACK, MAX_REDIRECTS, RESOLVER_REQUEST_TIMEOUT
from .loopback import convert_loopback_url, is_loopback_url
from .results import RedirectResult, ResolveError, ResolveRedirect, ResolveSuccess


REDIRECT_STATUSES = (301, 302)


class _ConnectionRefused(Exception):
    """Both loopback literals refused the connection."""
    pass


class AttemptDeadlineExceeded(requests.exceptions.Timeout):
    """The complete response did not arrive within the per-attempt timeout."""
    pass


def is_connection_refused(error: BaseException) -> bool:
    """Walk an exception chain (requests -> urllib3 -> socket) looking for ECONNREFUSED."""
    pending = [error]
    seen = set()
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))

        if isinstance(current, ConnectionRefusedError):
            return True
        if isinstance(current, OSError) and current.errno == errno.ECONNREFUSED:
            return True

        pending.append(current.__cause__)
        pending.append(current.__context__)
        pending.append(getattr(current, 'reason', None))
        pending.extend(arg for arg in getattr(current, 'args', ()) if isinstance(arg, BaseException))
    return False


class RedirectResolver:
    """Performs the final GET of a callback URL against the loopback application."""

    def __init__(self, logger=None, timeout: float = RESOLVER_REQUEST_TIMEOUT,
                 max_redirects: int = MAX_REDIRECTS, session: Optional[requests.Session] = None):
        """
        Args:
            logger: Receives debug output for every attempt and fallback decision
            timeout: Per-attempt request timeout in seconds
            max_redirects: Number of loopback redirects followed before giving up
            session: requests session to use, a new one by default
        """
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.session = session if session is not None else requests.Session()
        # Proxy settings from the environment must never apply to loopback traffic.
        self.session.trust_env = False

    def resolve(self, url: str) -> RedirectResult:
        """
        Fetch `url` and classify the outcome.

        Args:
            url: The callback URL captured on the host

        Returns:
            ResolveSuccess on a final 200, ResolveRedirect for a redirect that
            leaves the loopback interface, ResolveError otherwise
        """
        current = url
        remaining = self.max_redirects

        while True:
            if not is_loopback_url(current):
                self.logger.debug(f"Not a loopback url, leaving it to the caller: {current}")
                return ResolveRedirect(location=current)

            try:
                response = self._get_loopback(current)
            except requests.exceptions.RequestException as e:
                return ResolveError(message=f"Request to {current} failed: {e}")
            except _ConnectionRefused as e:
                return ResolveError(message=str(e))

            status = response.status_code
            self.logger.debug(f"Received status {status} from {current}")

            if status in REDIRECT_STATUSES:
                location = response.headers.get('Location')
                if not location:
                    return ResolveError(message=f"Received {status} redirect without a Location header from {current}")
                location = urllib.parse.urljoin(current, location)

                if not is_loopback_url(location):
                    self.logger.debug(f"Redirect leaves the loopback interface, not following: {location}")
                    return ResolveRedirect(location=location)

                if remaining <= 0:
                    return ResolveError(message=f"Too many redirects (more than {self.max_redirects})")
                remaining -= 1
                self.logger.debug(f"Following loopback redirect to {location} ({remaining} redirects left)")
                current = location
                continue

            if status == 200:
                body = response.text
                return ResolveSuccess(body=body if body else None)

            return ResolveError(message=f"Unexpected status code {status} from {current}")

    def _get_loopback(self, url: str) -> requests.Response:
        host = urllib.parse.urlsplit(url).netloc
        headers = {'Host': host}

        ipv4_url = convert_loopback_url(url, IPV4_LOOPBACK)
        self.logger.debug(f"Attempting IPv4 request to {ipv4_url} (Host: {host})")
        try:
            return self._get(ipv4_url, headers)
        except requests.exceptions.Timeout as e:
            self.logger.debug(f"IPv4 request timed out, not retrying: {e}")
            raise
        except requests.exceptions.ConnectionError as e:
            if not is_connection_refused(e):
                self.logger.debug(f"IPv4 request failed, not retrying: {e}")
                raise
            ipv4_error = e

        ipv6_url = convert_loopback_url(url, IPV6_LOOPBACK)
        self.logger.debug(f"IPv4 connection refused, falling back to IPv6 request to {ipv6_url} (Host: {host})")
        try:
            return self._get(ipv6_url, headers)
        except requests.exceptions.ConnectionError as e:
            if isinstance(e, requests.exceptions.Timeout) or not is_connection_refused(e):
                self.logger.debug(f"IPv6 request failed: {e}")
                raise
            self.logger.debug(f"IPv6 connection refused: {e}")
            raise _ConnectionRefused(
                f"Connection refused on both IPv4 and IPv6 loopback. IPv4: {ipv4_error}; IPv6: {e}"
            )

    def _get(self, url: str, headers) -> requests.Response:
        """
        GET `url` with a ceiling on the whole attempt.

        requests only bounds the connect and each socket read, so an
        application trickling its response could hold us indefinitely. The
        request runs on a worker thread and is abandoned at the deadline.
        """
        outcome = queue.Queue(maxsize=1)

        def fetch():
            try:
                response = self.session.get(url, headers=headers, allow_redirects=False, timeout=self.timeout)
            except Exception as e:
                outcome.put((None, e))
                return
            outcome.put((response, None))

        worker = threading.Thread(target=fetch, name='resolver-fetch')
        worker.daemon = True
        worker.start()

        try:
            response, error = outcome.get(timeout=self.timeout)
        except queue.Empty:
            raise AttemptDeadlineExceeded(f"No complete response from {url} within {self.timeout} seconds")
        if error is not None:
            raise error
        return response
