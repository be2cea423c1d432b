import pytest

from oauth2_forwarder.oauth_url import AuthorizationRequest, UrlValidationError, parse_authorization_url

SAMPLE_VALID_URL = (
    "https://login.microsoftonline.com/f6e8a999-5111-487e-a999-555557d56ac6/oauth2/v2.0/authorize"
    "?client_id=d68b9777-83ks-4efe-h47x-a0c8b92c5f5c"
    "&scope=499b84ac-1321-427f-aa17-267ca6975798%2Fuser_impersonation%20openid%20profile%20offline_access"
    "&redirect_uri=http%3A%2F%2Flocalhost%3A38915"
    "&client-request-id=c2eabe61-f890-4463-b322-1af5d42783b3&response_mode=query&response_type=code"
    "&x-client-SKU=msal.js.node&x-client-VER=2.10.0&x-client-OS=linux&x-client-CPU=arm64&client_info=1"
    "&code_challenge=5i8EjAJjrgQ2-3QqQpmxERhTTmKzcCfNG59mrGgPiyE&code_challenge_method=S256"
)

BASE = "https://login.example.com/oauth?client_id=test&scope=openid&redirect_uri=http://localhost:3000&response_type=code"


def test_parses_valid_url():
    """All standard parameters come through unchanged."""
    request = parse_authorization_url(SAMPLE_VALID_URL)

    assert isinstance(request, AuthorizationRequest)
    assert request.client_id == "d68b9777-83ks-4efe-h47x-a0c8b92c5f5c"
    assert request.redirect_uri == "http://localhost:38915"
    assert "user_impersonation" in request.scope
    assert request.scope == "499b84ac-1321-427f-aa17-267ca6975798/user_impersonation openid profile offline_access"
    assert request.code_challenge == "5i8EjAJjrgQ2-3QqQpmxERhTTmKzcCfNG59mrGgPiyE"
    assert request.code_challenge_method == "S256"
    assert request.response_type == "code"
    assert request.response_mode == "query"
    assert request.uses_pkce


def test_keeps_msal_client_parameters():
    request = parse_authorization_url(SAMPLE_VALID_URL)

    assert request.client_params == {
        "x-client-SKU": "msal.js.node",
        "x-client-VER": "2.10.0",
        "x-client-OS": "linux",
        "x-client-CPU": "arm64",
        "client_info": "1",
    }


def test_parses_optional_parameters():
    url = BASE + "&code_challenge=abc&code_challenge_method=plain&state=mystate&prompt=login&login_hint=user@example.com&domain_hint=example.com"
    request = parse_authorization_url(url)

    assert request.state == "mystate"
    assert request.prompt == "login"
    assert request.login_hint == "user@example.com"
    assert request.domain_hint == "example.com"
    assert request.code_challenge_method == "plain"


def test_optional_parameters_default_to_none():
    request = parse_authorization_url(BASE)

    assert request.state is None
    assert request.prompt is None
    assert request.login_hint is None
    assert request.response_mode is None
    assert request.code_challenge is None
    assert request.code_challenge_method is None
    assert not request.uses_pkce


@pytest.mark.parametrize("url", [None, ""])
def test_rejects_missing_url(url):
    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(url)
    assert "undefined" in str(exc_info.value)


@pytest.mark.parametrize("name", ["client_id", "response_type", "redirect_uri", "scope"])
def test_rejects_missing_required_parameter(name):
    params = {
        "client_id": "test",
        "scope": "openid",
        "redirect_uri": "http://localhost:3000",
        "response_type": "code",
    }
    del params[name]
    url = "https://login.example.com/oauth?" + "&".join(f"{k}={v}" for k, v in params.items())

    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(url)

    assert exc_info.value.field == name
    assert f"Missing required parameter: {name}" in str(exc_info.value)


def test_rejects_empty_required_parameter():
    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(BASE.replace("client_id=test", "client_id="))
    assert exc_info.value.field == "client_id"


def test_rejects_code_challenge_without_method():
    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(BASE + "&code_challenge=abc")
    assert exc_info.value.field == "code_challenge_method"


def test_rejects_method_without_code_challenge():
    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(BASE + "&code_challenge_method=S256")
    assert exc_info.value.field == "code_challenge"


@pytest.mark.parametrize("name,value,extra", [
    ("code_challenge_method", "S512", "&code_challenge=abc&code_challenge_method=S512"),
    ("response_mode", "web_message", "&response_mode=web_message"),
    ("prompt", "always", "&prompt=always"),
])
def test_rejects_invalid_enum_values(name, value, extra):
    with pytest.raises(UrlValidationError) as exc_info:
        parse_authorization_url(BASE + extra)

    assert exc_info.value.field == name
    assert exc_info.value.value == value
    assert f'{value} is not valid for "{name}" property' == str(exc_info.value)


@pytest.mark.parametrize("prompt", ["login", "none", "consent", "select_account"])
def test_accepts_every_prompt_value(prompt):
    assert parse_authorization_url(BASE + f"&prompt={prompt}").prompt == prompt


@pytest.mark.parametrize("mode", ["query", "fragment", "form_post"])
def test_accepts_every_response_mode(mode):
    assert parse_authorization_url(BASE + f"&response_mode={mode}").response_mode == mode


def test_request_is_immutable():
    request = parse_authorization_url(BASE)
    with pytest.raises(Exception):
        request.client_id = "other"
