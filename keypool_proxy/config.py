"""Configuration management for the key pool proxy."""

import json
import os
from dataclasses import dataclass, field
from typing import Dict, List

from dotenv import load_dotenv

from keypool_proxy.models import PROVIDERS

POLICY_ROUND_ROBIN = "round_robin"
POLICY_LEAST_USED = "least_used"
SELECTION_POLICIES = (POLICY_ROUND_ROBIN, POLICY_LEAST_USED)

DEFAULT_BASE_URLS = {
    "gemini": "https://generativelanguage.googleapis.com",
    "openai": "https://api.openai.com",
    "anthropic": "https://api.anthropic.com",
}


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    gemini_api_keys: List[str] = field(default_factory=list)
    openai_api_keys: List[str] = field(default_factory=list)
    anthropic_api_keys: List[str] = field(default_factory=list)
    gemini_base_url: str = DEFAULT_BASE_URLS["gemini"]
    openai_base_url: str = DEFAULT_BASE_URLS["openai"]
    anthropic_base_url: str = DEFAULT_BASE_URLS["anthropic"]
    default_provider: str = "gemini"
    access_token: str = ""
    rate_limit_requests: int = 60
    rate_limit_window_seconds: float = 60.0
    rate_limit_max_clients: int = 10000
    selection_policy: str = POLICY_ROUND_ROBIN
    max_retries: int = 0
    cooldown_rate_limit_seconds: float = 300.0
    cooldown_auth_seconds: float = 3600.0
    cooldown_server_error_seconds: float = 60.0
    cooldown_network_error_seconds: float = 60.0
    cooldown_default_seconds: float = 10.0
    request_timeout_seconds: float = 300.0
    port: int = 8000
    host: str = "0.0.0.0"
    log_level: str = "INFO"

    def __post_init__(self):
        if not any(self.keys_for(provider) for provider in PROVIDERS):
            raise ValueError(
                "At least one of GEMINI_API_KEYS, OPENAI_API_KEYS or "
                "ANTHROPIC_API_KEYS must be set and non-empty"
            )
        if self.default_provider not in PROVIDERS:
            raise ValueError(f"Unknown DEFAULT_PROVIDER: {self.default_provider}")
        if self.selection_policy not in SELECTION_POLICIES:
            raise ValueError(
                f"Unknown KEY_SELECTION_POLICY: {self.selection_policy}"
            )
        for name in (
            "rate_limit_requests",
            "rate_limit_max_clients",
            "max_retries",
            "cooldown_rate_limit_seconds",
            "cooldown_auth_seconds",
            "cooldown_server_error_seconds",
            "cooldown_network_error_seconds",
            "cooldown_default_seconds",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")
        if self.rate_limit_window_seconds <= 0:
            raise ValueError("rate_limit_window_seconds must be positive")

    def keys_for(self, provider: str) -> List[str]:
        return getattr(self, f"{provider}_api_keys")

    def base_url_for(self, provider: str) -> str:
        return getattr(self, f"{provider}_base_url")

    def provider_keys(self) -> Dict[str, List[str]]:
        return {provider: self.keys_for(provider) for provider in PROVIDERS}


def parse_key_list(raw: str, variable: str = "API_KEYS") -> List[str]:
    """Parse a comma-separated or JSON-array list of keys.

    Raises:
        ValueError: If the value looks like JSON but is not an array of strings
    """
    raw = raw.strip()
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{variable} is not a valid JSON array: {exc}") from exc
        if not isinstance(parsed, list) or not all(
            isinstance(item, str) for item in parsed
        ):
            raise ValueError(f"{variable} must be a JSON array of strings")
        return [item.strip() for item in parsed if item.strip()]
    return [key.strip() for key in raw.split(",") if key.strip()]


def load_config(use_dotenv: bool = True) -> Config:
    """Load configuration from environment variables.

    Args:
        use_dotenv: Read a ``.env`` file into the environment first

    Returns:
        Config: Configured application settings

    Raises:
        ValueError: If required environment variables are missing or invalid
    """
    if use_dotenv:
        load_dotenv()

    gemini_raw = os.getenv("GEMINI_API_KEYS") or os.getenv("API_KEYS", "")

    return Config(
        gemini_api_keys=parse_key_list(gemini_raw, "GEMINI_API_KEYS"),
        openai_api_keys=parse_key_list(
            os.getenv("OPENAI_API_KEYS", ""), "OPENAI_API_KEYS"
        ),
        anthropic_api_keys=parse_key_list(
            os.getenv("ANTHROPIC_API_KEYS", ""), "ANTHROPIC_API_KEYS"
        ),
        gemini_base_url=os.getenv("GEMINI_BASE_URL", DEFAULT_BASE_URLS["gemini"]),
        openai_base_url=os.getenv("OPENAI_BASE_URL", DEFAULT_BASE_URLS["openai"]),
        anthropic_base_url=os.getenv(
            "ANTHROPIC_BASE_URL", DEFAULT_BASE_URLS["anthropic"]
        ),
        default_provider=os.getenv("DEFAULT_PROVIDER", "gemini").lower(),
        access_token=os.getenv("ACCESS_TOKEN", ""),
        rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", "60")),
        rate_limit_window_seconds=float(
            os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60")
        ),
        rate_limit_max_clients=int(os.getenv("RATE_LIMIT_MAX_CLIENTS", "10000")),
        selection_policy=os.getenv("KEY_SELECTION_POLICY", POLICY_ROUND_ROBIN).lower(),
        max_retries=int(os.getenv("MAX_RETRIES", "0")),
        cooldown_rate_limit_seconds=float(
            os.getenv("COOLDOWN_RATE_LIMIT_SECONDS", "300")
        ),
        cooldown_auth_seconds=float(os.getenv("COOLDOWN_AUTH_SECONDS", "3600")),
        cooldown_server_error_seconds=float(
            os.getenv("COOLDOWN_SERVER_ERROR_SECONDS", "60")
        ),
        cooldown_network_error_seconds=float(
            os.getenv("COOLDOWN_NETWORK_ERROR_SECONDS", "60")
        ),
        cooldown_default_seconds=float(os.getenv("COOLDOWN_DEFAULT_SECONDS", "10")),
        request_timeout_seconds=float(os.getenv("REQUEST_TIMEOUT_SECONDS", "300")),
        port=int(os.getenv("PORT", "8000")),
        host=os.getenv("HOST", "0.0.0.0"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
