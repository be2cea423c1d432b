"""
Outcome of resolving a callback URL, and its JSON wire format.

The wire format is shared by the completion report the forwarder sends and by
the proxy when it answers the held browser connection:

    {"type": "success", "body": "..."}      body is optional
    {"type": "redirect", "location": "..."}
    {"type": "error", "message": "..."}
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .utils import ForwarderException


@dataclass(frozen=True)
class ResolveSuccess:
    """The loopback application answered 200."""
    body: Optional[str] = None
    type: str = field(default='success', init=False)


@dataclass(frozen=True)
class ResolveRedirect:
    """The loopback application redirected to a non-loopback location."""
    location: str
    type: str = field(default='redirect', init=False)


@dataclass(frozen=True)
class ResolveError:
    """Resolution failed."""
    message: str
    type: str = field(default='error', init=False)


RedirectResult = Union[ResolveSuccess, ResolveRedirect, ResolveError]


class InvalidResultError(ForwarderException):
    """Raised when a wire-format result cannot be decoded."""
    pass


def result_to_dict(result: RedirectResult) -> Dict[str, Any]:
    if isinstance(result, ResolveSuccess):
        data = {'type': 'success'}
        if result.body is not None:
            data['body'] = result.body
        return data
    if isinstance(result, ResolveRedirect):
        return {'type': 'redirect', 'location': result.location}
    if isinstance(result, ResolveError):
        return {'type': 'error', 'message': result.message}
    raise InvalidResultError(f"Not a redirect result: {result!r}")


def result_from_dict(data: Any) -> RedirectResult:
    """
    Decode a wire-format result.

    Args:
        data: The decoded JSON value

    Returns:
        The matching result object

    Raises:
        InvalidResultError: If the value is not a well-formed result
    """
    if not isinstance(data, dict):
        raise InvalidResultError("Result must be a JSON object")

    result_type = data.get('type')
    if result_type == 'success':
        body = data.get('body')
        if body is not None and not isinstance(body, str):
            raise InvalidResultError("Success result 'body' must be a string")
        return ResolveSuccess(body=body)
    if result_type == 'redirect':
        location = data.get('location')
        if not isinstance(location, str) or not location:
            raise InvalidResultError("Redirect result requires a 'location' string")
        return ResolveRedirect(location=location)
    if result_type == 'error':
        message = data.get('message')
        if not isinstance(message, str):
            raise InvalidResultError("Error result requires a 'message' string")
        return ResolveError(message=message)
    raise InvalidResultError(f"Unknown result type: {result_type!r}")
