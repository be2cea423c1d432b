"""
Forwarder side of the relay, run inside the isolated environment.

One forward() call drives a whole login:

1. POST the authorization URL to the proxy, which opens the host browser and
   blocks until the provider redirects back. The proxy answers with the
   captured callback URL and a request id.
2. Deliver the callback URL to the application's loopback listener.
3. Report the outcome to the proxy so it can answer the browser, which has
   been waiting on the captured redirect all along.

The completion report is sent exactly once. Retrying it could race with the
proxy's own expiry of the pending request.
"""

import logging
from typing import Optional, Tuple

import requests

from .constants import COMPLETION_PATH, FORWARDER_COMPLETE_TIMEOUT, FORWARDER_START_TIMEOUT
from .redirect_resolver import RedirectResolver
from .results import RedirectResult, result_to_dict
from .utils import ForwarderException


class ForwarderError(ForwarderException):
    """The proxy could not start the flow."""
    pass


class CompletionReportError(ForwarderException):
    """The callback was resolved locally but the proxy did not accept the report."""

    def __init__(self, message, result: RedirectResult, code=None):
        super().__init__(message, code=code)
        self.result = result


def _error_reason(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get('error'):
        return str(data['error'])
    return response.reason or 'No message'


class Forwarder:
    """Relays one authorization request through the proxy."""

    def __init__(self, host: str, port: int, resolver: Optional[RedirectResolver] = None, logger=None,
                 start_timeout: float = FORWARDER_START_TIMEOUT,
                 complete_timeout: float = FORWARDER_COMPLETE_TIMEOUT):
        self.host = host
        self.port = port
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self.resolver = resolver if resolver is not None else RedirectResolver(logger=self.logger)
        self.start_timeout = start_timeout
        self.complete_timeout = complete_timeout
        self.session = requests.Session()
        self.session.trust_env = False

    @property
    def base_url(self) -> str:
        host = f"[{self.host}]" if ':' in self.host and not self.host.startswith('[') else self.host
        return f"http://{host}:{self.port}"

    def forward(self, authorization_url: str) -> RedirectResult:
        """
        Run the start, resolve and complete steps for one authorization URL.

        Args:
            authorization_url: The URL the application asked to open in a browser

        Returns:
            The outcome of delivering the callback to the loopback application

        Raises:
            ForwarderError: If the proxy did not return a callback URL
            CompletionReportError: If the final report was rejected; the
                resolved outcome is available as `.result`
        """
        self.logger.debug(f"Forwarding authorization url {authorization_url}")
        callback_url, request_id = self._start(authorization_url)
        self.logger.debug(f"Received callback url {callback_url} for request {request_id}")

        result = self.resolver.resolve(callback_url)
        self.logger.debug(f"Resolved callback as {result.type}")

        self._complete(request_id, result)
        return result

    def _start(self, authorization_url: str) -> Tuple[str, str]:
        try:
            response = self.session.post(
                self.base_url + '/',
                json={'url': authorization_url},
                timeout=self.start_timeout
            )
        except requests.exceptions.RequestException as e:
            raise ForwarderError(f"Failed to reach proxy at {self.base_url}: {e}")

        if response.status_code != 200:
            raise ForwarderError(
                f"Http request failed: Status: {response.status_code}-{_error_reason(response)}",
                code=response.status_code
            )

        try:
            data = response.json()
        except ValueError:
            raise ForwarderError("Proxy returned a body that is not valid JSON")

        if not isinstance(data, dict):
            raise ForwarderError("Proxy returned an unexpected body")
        callback_url = data.get('url')
        request_id = data.get('requestId')
        if not callback_url or not isinstance(callback_url, str):
            raise ForwarderError("Proxy response is missing the callback 'url'")
        if not request_id or not isinstance(request_id, str):
            raise ForwarderError("Proxy response is missing the 'requestId'")
        return callback_url, request_id

    def _complete(self, request_id: str, result: RedirectResult) -> None:
        report = {'requestId': request_id, 'result': result_to_dict(result)}
        self.logger.debug(f"Sending completion report for request {request_id}")
        try:
            response = self.session.post(
                self.base_url + COMPLETION_PATH,
                json=report,
                timeout=self.complete_timeout
            )
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Failed to send completion report: {e}")
            raise CompletionReportError(f"Failed to send completion report: {e}", result)

        if response.status_code != 200:
            reason = _error_reason(response)
            self.logger.error(f"Completion report rejected: {response.status_code}-{reason}")
            raise CompletionReportError(
                f"Completion report rejected: Status: {response.status_code}-{reason}",
                result,
                code=response.status_code
            )
        self.logger.debug(f"Completion report accepted for request {request_id}")
