"""oauth2-forwarder: relay OAuth2 loopback redirects out of isolated environments."""

__version__ = "1.2.0"
__author__ = "oauth2-forwarder contributors"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2024 oauth2-forwarder contributors"

from .results import ResolveSuccess, ResolveRedirect, ResolveError, result_from_dict, result_to_dict
from .utils import ForwarderException
from .oauth_url import AuthorizationRequest, UrlValidationError, parse_authorization_url
from .redirect_resolver import RedirectResolver
from .forwarder import Forwarder, ForwarderError, CompletionReportError
from .callback_capture import CallbackCapture, CapturedCallback, CaptureError, CaptureTimeoutError
from .registry import PendingRequestRegistry
from .proxy import CredentialProxy
