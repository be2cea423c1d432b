"""
Registry of captured callbacks waiting for their completion report.

Each entry owns the `complete` function of a held browser response. An entry
leaves the registry exactly once: either a completion report pops it and the
function is called with the reported result, or its expiry timer pops it and
the browser is told the flow was abandoned. Closing the registry answers
every entry still pending the same way.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .constants import COMPLETION_TTL
from .results import RedirectResult, ResolveError
from .utils import ForwarderException


EXPIRED_MESSAGE = "Timed out waiting for the application to receive the OAuth callback."
SHUTDOWN_MESSAGE = "The oauth2-forwarder proxy shut down before the login completed."


class DuplicateRequestError(ForwarderException):
    """A pending request with the same id is already registered."""
    pass


@dataclass
class PendingRequest:
    request_id: str
    complete: Callable[[RedirectResult], None]
    expires_at: float
    timer: threading.Timer


class PendingRequestRegistry:
    """Thread-safe map of request id to pending browser response."""

    def __init__(self, ttl: float = COMPLETION_TTL, logger=None):
        """
        Args:
            ttl: Seconds a pending request waits for its completion report
            logger: Receives debug output
        """
        self.ttl = ttl
        self.logger = logger if logger is not None else logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._pending: Dict[str, PendingRequest] = {}
        self._closed = False

    def __len__(self):
        with self._lock:
            return len(self._pending)

    def __contains__(self, request_id):
        with self._lock:
            return request_id in self._pending

    def add(self, request_id: str, complete: Callable[[RedirectResult], None], ttl: Optional[float] = None) -> PendingRequest:
        """
        Register a pending request and start its expiry timer.

        Raises:
            DuplicateRequestError: If the id is already pending
            ForwarderException: If the registry has been closed
        """
        ttl = self.ttl if ttl is None else ttl
        timer = threading.Timer(ttl, self._expire, args=(request_id,))
        timer.daemon = True
        pending = PendingRequest(
            request_id=request_id,
            complete=complete,
            expires_at=time.monotonic() + ttl,
            timer=timer,
        )

        with self._lock:
            if self._closed:
                raise ForwarderException("Registry is closed")
            if request_id in self._pending:
                raise DuplicateRequestError(f"Request {request_id} is already pending")
            self._pending[request_id] = pending
            timer.start()

        self.logger.debug(f"Registered pending request {request_id}, expires in {ttl} seconds")
        return pending

    def complete(self, request_id: str, result: RedirectResult) -> bool:
        """
        Answer a pending request with its result.

        Returns:
            False if no such request is pending (unknown, completed or expired)
        """
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            self.logger.debug(f"No pending request for id {request_id}")
            return False

        pending.timer.cancel()
        remaining = max(0.0, pending.expires_at - time.monotonic())
        self.logger.debug(f"Completing pending request {request_id} with {result.type} result, {remaining:.1f} seconds before expiry")
        pending.complete(result)
        return True

    def _expire(self, request_id: str) -> None:
        with self._lock:
            pending = self._pending.pop(request_id, None)
        if pending is None:
            return

        self.logger.warning(f"Pending request {request_id} expired without a completion report")
        self._abandon(pending, EXPIRED_MESSAGE)

    def _abandon(self, pending: PendingRequest, message: str) -> None:
        try:
            pending.complete(ResolveError(message=message))
        except Exception as e:
            self.logger.error(f"Failed to answer abandoned request {pending.request_id}: {e}")

    def close(self) -> None:
        """Cancel every expiry timer and answer all pending requests with an error."""
        with self._lock:
            self._closed = True
            pending = list(self._pending.values())
            self._pending.clear()
        for entry in pending:
            entry.timer.cancel()
            self._abandon(entry, SHUTDOWN_MESSAGE)
        if pending:
            self.logger.debug(f"Answered {len(pending)} pending requests on shutdown")
