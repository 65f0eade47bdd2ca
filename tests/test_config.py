import pytest

from keypool_proxy.config import Config, load_config, parse_key_list

KEY_VARIABLES = ("GEMINI_API_KEYS", "API_KEYS", "OPENAI_API_KEYS", "ANTHROPIC_API_KEYS")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for variable in KEY_VARIABLES:
        monkeypatch.delenv(variable, raising=False)


def test_config_loads_valid_env(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEYS", "key1,key2")

    config = load_config(use_dotenv=False)

    assert config.gemini_api_keys == ["key1", "key2"]
    assert config.openai_api_keys == []
    assert config.anthropic_api_keys == []
    assert config.port == 8000
    assert config.host == "0.0.0.0"
    assert config.default_provider == "gemini"
    assert config.access_token == ""
    assert config.rate_limit_requests == 60
    assert config.rate_limit_window_seconds == 60.0
    assert config.selection_policy == "round_robin"
    assert config.max_retries == 0
    assert config.cooldown_rate_limit_seconds == 300.0
    assert config.cooldown_auth_seconds == 3600.0
    assert config.gemini_base_url == "https://generativelanguage.googleapis.com"
    assert config.log_level == "INFO"


def test_config_missing_api_keys(monkeypatch):
    monkeypatch.setattr("keypool_proxy.config.load_dotenv", lambda: None)

    with pytest.raises(ValueError, match="must be set and non-empty"):
        load_config()


def test_config_empty_api_keys(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEYS", "")
    monkeypatch.setenv("OPENAI_API_KEYS", " , ")

    with pytest.raises(ValueError, match="must be set and non-empty"):
        load_config(use_dotenv=False)


def test_config_single_other_provider_is_enough(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEYS", "sk-ant-1")

    config = load_config(use_dotenv=False)

    assert config.provider_keys() == {
        "gemini": [],
        "openai": [],
        "anthropic": ["sk-ant-1"],
    }


def test_config_api_keys_fallback(monkeypatch):
    monkeypatch.setenv("API_KEYS", "legacy1,legacy2")

    config = load_config(use_dotenv=False)

    assert config.gemini_api_keys == ["legacy1", "legacy2"]


def test_config_custom_values(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEYS", "custom_key")
    monkeypatch.setenv("OPENAI_API_KEYS", '["sk-1", "sk-2"]')
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("HOST", "127.0.0.1")
    monkeypatch.setenv("DEFAULT_PROVIDER", "OpenAI")
    monkeypatch.setenv("ACCESS_TOKEN", "secret")
    monkeypatch.setenv("RATE_LIMIT_REQUESTS", "10")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "30")
    monkeypatch.setenv("KEY_SELECTION_POLICY", "least_used")
    monkeypatch.setenv("MAX_RETRIES", "2")
    monkeypatch.setenv("COOLDOWN_RATE_LIMIT_SECONDS", "3600")
    monkeypatch.setenv("OPENAI_BASE_URL", "https://custom.api.com")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    config = load_config(use_dotenv=False)

    assert config.gemini_api_keys == ["custom_key"]
    assert config.openai_api_keys == ["sk-1", "sk-2"]
    assert config.port == 9000
    assert config.host == "127.0.0.1"
    assert config.default_provider == "openai"
    assert config.access_token == "secret"
    assert config.rate_limit_requests == 10
    assert config.rate_limit_window_seconds == 30.0
    assert config.selection_policy == "least_used"
    assert config.max_retries == 2
    assert config.cooldown_rate_limit_seconds == 3600.0
    assert config.base_url_for("openai") == "https://custom.api.com"
    assert config.log_level == "DEBUG"


def test_config_strips_whitespace(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEYS", " key1 , key2 ")

    config = load_config(use_dotenv=False)

    assert config.gemini_api_keys == ["key1", "key2"]


def test_config_rejects_unknown_policy():
    with pytest.raises(ValueError, match="KEY_SELECTION_POLICY"):
        Config(gemini_api_keys=["k1"], selection_policy="random")


def test_config_rejects_unknown_default_provider():
    with pytest.raises(ValueError, match="DEFAULT_PROVIDER"):
        Config(gemini_api_keys=["k1"], default_provider="mistral")


def test_config_rejects_negative_values():
    with pytest.raises(ValueError, match="max_retries"):
        Config(gemini_api_keys=["k1"], max_retries=-1)


def test_parse_key_list_json_array():
    assert parse_key_list('["a", " b ", ""]') == ["a", "b"]


def test_parse_key_list_invalid_json():
    with pytest.raises(ValueError, match="not a valid JSON array"):
        parse_key_list("[broken", "OPENAI_API_KEYS")


def test_parse_key_list_json_must_hold_strings():
    with pytest.raises(ValueError, match="array of strings"):
        parse_key_list("[1, 2]")
