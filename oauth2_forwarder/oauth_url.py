"""
Parsing and validation of OAuth 2.0 authorization code request URLs.

The accepted parameters follow the Microsoft identity platform description of
the authorization request:
https://learn.microsoft.com/en-us/entra/identity-platform/v2-oauth2-auth-code-flow#request-an-authorization-code

Parameters that MSAL clients add without documenting them (x-client-SKU and
friends) are kept in `client_params` so they survive the round trip.
"""

import urllib.parse
from dataclasses import dataclass, field
from typing import Dict, Optional

from .utils import ForwarderException


REQUIRED_PARAMS = ('client_id', 'response_type', 'redirect_uri', 'scope')

PROMPT_VALUES = ('login', 'none', 'consent', 'select_account')
RESPONSE_MODE_VALUES = ('query', 'fragment', 'form_post')
CODE_CHALLENGE_METHOD_VALUES = ('S256', 'plain')

NON_STANDARD_PARAMS = ('x-client-SKU', 'x-client-VER', 'x-client-OS', 'x-client-CPU', 'client_info')


class UrlValidationError(ForwarderException):
    """Raised when a URL is not a valid OAuth 2.0 authorization request."""

    def __init__(self, message: str, field_name: Optional[str] = None, value: Optional[str] = None):
        super().__init__(message)
        self.field = field_name
        self.value = value


@dataclass(frozen=True)
class AuthorizationRequest:
    """Parameters of an OAuth 2.0 authorization code request."""
    client_id: str
    response_type: str
    redirect_uri: str
    scope: str
    state: Optional[str] = None
    prompt: Optional[str] = None
    response_mode: Optional[str] = None
    login_hint: Optional[str] = None
    domain_hint: Optional[str] = None
    code_challenge: Optional[str] = None
    code_challenge_method: Optional[str] = None
    client_params: Dict[str, str] = field(default_factory=dict)

    @property
    def uses_pkce(self) -> bool:
        return self.code_challenge is not None


def _check_enum(params: Dict[str, str], name: str, allowed) -> Optional[str]:
    value = params.get(name)
    if not value:
        return None
    if value not in allowed:
        raise UrlValidationError(
            f'{value} is not valid for "{name}" property',
            field_name=name,
            value=value
        )
    return value


def parse_authorization_url(url: Optional[str]) -> AuthorizationRequest:
    """
    Parse and validate an OAuth 2.0 authorization request URL.

    Args:
        url: The full authorization URL, query string included

    Returns:
        The parsed request

    Raises:
        UrlValidationError: If a required parameter is missing, the PKCE
            parameters are not paired, or an enumerated parameter has an
            unsupported value
    """
    if not url:
        raise UrlValidationError("Url parameter was undefined")

    try:
        parsed = urllib.parse.urlsplit(url)
    except ValueError as e:
        raise UrlValidationError(f"Invalid url: {e}")

    # First occurrence wins, blank values are kept so they can be reported.
    params = {}
    for key, value in urllib.parse.parse_qsl(parsed.query, keep_blank_values=True):
        params.setdefault(key, value)

    for name in REQUIRED_PARAMS:
        if not params.get(name):
            raise UrlValidationError(f"Missing required parameter: {name}", field_name=name)

    code_challenge = params.get('code_challenge') or None
    code_challenge_method = params.get('code_challenge_method') or None
    if code_challenge and not code_challenge_method:
        raise UrlValidationError(
            "Missing required parameter: code_challenge_method (code_challenge is present)",
            field_name='code_challenge_method'
        )
    if code_challenge_method and not code_challenge:
        raise UrlValidationError(
            "Missing required parameter: code_challenge (code_challenge_method is present)",
            field_name='code_challenge'
        )

    code_challenge_method = _check_enum(params, 'code_challenge_method', CODE_CHALLENGE_METHOD_VALUES) if code_challenge else None
    response_mode = _check_enum(params, 'response_mode', RESPONSE_MODE_VALUES)
    prompt = _check_enum(params, 'prompt', PROMPT_VALUES)

    return AuthorizationRequest(
        client_id=params['client_id'],
        response_type=params['response_type'],
        redirect_uri=params['redirect_uri'],
        scope=params['scope'],
        state=params.get('state'),
        prompt=prompt,
        response_mode=response_mode,
        login_hint=params.get('login_hint'),
        domain_hint=params.get('domain_hint'),
        code_challenge=code_challenge,
        code_challenge_method=code_challenge_method,
        client_params={k: params[k] for k in NON_STANDARD_PARAMS if k in params},
    )
