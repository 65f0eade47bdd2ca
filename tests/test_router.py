import pytest

from keypool_proxy.config import Config
from keypool_proxy.router import AuthStyle, Router, match_prefix, prepare_headers


def make_router(**overrides) -> Router:
    config = Config(
        gemini_api_keys=["g1"],
        gemini_base_url="https://gemini.example.test",
        openai_base_url="https://openai.example.test/",
        anthropic_base_url="https://anthropic.example.test",
        **overrides,
    )
    return Router.from_config(config)


@pytest.mark.parametrize(
    "path, provider, stripped",
    [
        ("/openai/v1/chat/completions", "openai", "/v1/chat/completions"),
        ("/openai", "openai", "/"),
        ("/anthropic/v1/messages", "anthropic", "/v1/messages"),
        ("/gemini/v1beta/models", "gemini", "/v1beta/models"),
        ("/v1/chat/completions", None, "/v1/chat/completions"),
        ("/openaiish/v1", None, "/openaiish/v1"),
    ],
)
def test_match_prefix(path, provider, stripped):
    assert match_prefix(path) == (provider, stripped)


def test_prepare_headers_drops_denylist():
    headers = prepare_headers(
        {
            "Host": "incoming.example",
            "Cookie": "session=1",
            "Authorization": "Bearer caller",
            "X-Access-Token": "proxy-secret",
            "x-goog-api-key": "caller-key",
            "x-api-key": "caller-key",
            "connection": "keep-alive",
            "content-length": "2",
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }
    )

    assert headers == {
        "content-type": "application/json",
        "anthropic-version": "2023-06-01",
    }


def test_default_route_keeps_path_and_query():
    router = make_router()

    route = router.route("/v1beta/models/gemini-pro:generateContent", "alt=sse", {})

    assert route.provider.name == "gemini"
    assert route.url == (
        "https://gemini.example.test/v1beta/models/gemini-pro:generateContent"
    )
    assert route.params == [("alt", "sse")]


def test_default_provider_is_configurable():
    router = make_router(default_provider="openai")

    route = router.route("/v1/chat/completions", "", {})

    assert route.provider.name == "openai"
    assert route.url == "https://openai.example.test/v1/chat/completions"


def test_gemini_credential_goes_into_query():
    router = make_router()
    route = router.route("/gemini/v1beta/models", "key=caller&foo=bar", {})

    url, headers, params = route.authorize("server-key")

    assert route.provider.auth_style is AuthStyle.QUERY
    assert url == "https://gemini.example.test/v1beta/models"
    assert params == [("foo", "bar"), ("key", "server-key")]
    assert "authorization" not in headers


def test_openai_credential_is_bearer():
    router = make_router()
    route = router.route(
        "/openai/v1/chat/completions", "", {"authorization": "Bearer caller"}
    )

    url, headers, params = route.authorize("sk-server")

    assert url == "https://openai.example.test/v1/chat/completions"
    assert headers["authorization"] == "Bearer sk-server"
    assert params == []


def test_anthropic_credential_is_custom_header():
    router = make_router()
    route = router.route(
        "/anthropic/v1/messages", "", {"x-api-key": "caller", "anthropic-version": "1"}
    )

    _, headers, _ = route.authorize("sk-ant-server")

    assert headers == {"anthropic-version": "1", "x-api-key": "sk-ant-server"}


def test_authorize_does_not_mutate_route():
    router = make_router()
    route = router.route("/openai/v1/models", "", {"accept": "application/json"})

    route.authorize("sk-1")

    assert route.headers == {"accept": "application/json"}


def test_unknown_default_provider_rejected():
    router = make_router()

    with pytest.raises(ValueError):
        Router(router.providers, "mistral")
