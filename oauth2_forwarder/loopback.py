"""
Helpers for loopback redirect URIs.

Loopback redirects (RFC 8252 section 7.3) target a listener on the requesting
device itself. Only plain http URLs whose host is localhost, 127.0.0.1 or
[::1] are treated as loopback.
"""

import re
from typing import Optional

from .constants import IPV4_LOOPBACK, IPV6_LOOPBACK
from .utils import ForwarderException


LOOPBACK_PATTERNS = [
    re.compile(r'^http://localhost(?::(\d{1,5}))?(?:[/?#].*)?$', re.IGNORECASE),
    re.compile(r'^http://127\.0\.0\.1(?::(\d{1,5}))?(?:[/?#].*)?$'),
    re.compile(r'^http://\[::1\](?::(\d{1,5}))?(?:[/?#].*)?$'),
]

_LOOPBACK_HOST = re.compile(r'^(http://)(?:localhost|127\.0\.0\.1|\[::1\])(?=[:/?#]|$)', re.IGNORECASE)


class PortError(ForwarderException):
    """Raised when a port cannot be extracted from a redirect URI."""
    pass


def _match(uri: str) -> Optional[re.Match]:
    for pattern in LOOPBACK_PATTERNS:
        match = pattern.match(uri)
        if match:
            return match
    return None


def is_loopback_url(uri: str) -> bool:
    """Check if a URL points at localhost, 127.0.0.1 or [::1]."""
    return _match(uri) is not None


def convert_loopback_url(uri: str, target_address: str) -> str:
    """
    Rewrite the host of a loopback URL to a specific loopback literal.

    Args:
        uri: A loopback URL
        target_address: Either "127.0.0.1" or "[::1]"

    Returns:
        The URL with its host replaced, port and path preserved
    """
    if target_address not in (IPV4_LOOPBACK, IPV6_LOOPBACK):
        raise ValueError(f"Not a loopback literal: {target_address}")
    return _LOOPBACK_HOST.sub(lambda m: m.group(1) + target_address, uri, count=1)


def extract_port(uri: str) -> Optional[int]:
    """
    Extract the port of a loopback redirect URI.

    Args:
        uri: The redirect URI

    Returns:
        The port number, or None when the URI has no explicit port

    Raises:
        PortError: If the URI is not a loopback URL or the port is out of range
    """
    match = _match(uri or '')
    if not match:
        raise PortError(f"Invalid URL format, not a loopback redirect: {uri}")

    if match.group(1) is None:
        return None

    port = int(match.group(1))
    if port < 0 or port > 65535:
        raise PortError(f"Not a valid port: {port}")
    return port
