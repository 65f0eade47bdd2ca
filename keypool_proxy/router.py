"""Maps inbound paths to upstream providers and injects credentials.

Routing priority, first match wins:

1. ``/openai`` and ``/openai/...``       -> openai
2. ``/anthropic`` and ``/anthropic/...`` -> anthropic
3. ``/gemini`` and ``/gemini/...``       -> gemini
4. everything else                       -> the configured default provider

The matched prefix is stripped before forwarding. Native paths such as
``/v1/chat/completions`` or ``/v1/messages`` carry no prefix and always go
to the default provider; ``/v1/`` is shared by several APIs and is never
used to guess one.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qsl

from keypool_proxy.config import Config
from keypool_proxy.models import PROVIDER_ANTHROPIC, PROVIDER_GEMINI, PROVIDER_OPENAI

HOP_BY_HOP_HEADERS = frozenset(
    {
        "host",
        "connection",
        "keep-alive",
        "transfer-encoding",
        "te",
        "trailer",
        "upgrade",
        "proxy-authorization",
        "proxy-authenticate",
        "content-encoding",
        "content-length",
    }
)

# Inbound trust material and caller-supplied credentials never go upstream.
DENIED_HEADERS = frozenset(
    {"cookie", "authorization", "x-access-token", "x-goog-api-key", "x-api-key"}
)


class AuthStyle(str, Enum):
    QUERY = "query"
    BEARER = "bearer"
    HEADER = "header"


@dataclass(frozen=True)
class Provider:
    """One upstream API: where it lives and how it expects its key."""

    name: str
    base_url: str
    auth_style: AuthStyle
    auth_name: str

    def url_for(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def authorize(
        self,
        headers: Dict[str, str],
        params: List[Tuple[str, str]],
        credential: str,
    ) -> Tuple[Dict[str, str], List[Tuple[str, str]]]:
        if self.auth_style is AuthStyle.QUERY:
            return dict(headers), [*params, (self.auth_name, credential)]
        if self.auth_style is AuthStyle.BEARER:
            return {**headers, self.auth_name: f"Bearer {credential}"}, list(params)
        return {**headers, self.auth_name: credential}, list(params)


PROVIDER_AUTH = {
    PROVIDER_GEMINI: (AuthStyle.QUERY, "key"),
    PROVIDER_OPENAI: (AuthStyle.BEARER, "authorization"),
    PROVIDER_ANTHROPIC: (AuthStyle.HEADER, "x-api-key"),
}

ROUTE_PREFIXES = (
    ("/openai", PROVIDER_OPENAI),
    ("/anthropic", PROVIDER_ANTHROPIC),
    ("/gemini", PROVIDER_GEMINI),
)


@dataclass
class Route:
    provider: Provider
    path: str
    params: List[Tuple[str, str]] = field(default_factory=list)
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def url(self) -> str:
        return self.provider.url_for(self.path)

    def authorize(
        self, credential: str
    ) -> Tuple[str, Dict[str, str], List[Tuple[str, str]]]:
        headers, params = self.provider.authorize(self.headers, self.params, credential)
        return self.url, headers, params


def prepare_headers(request_headers: Dict[str, str]) -> Dict[str, str]:
    """Remove hop-by-hop headers and inbound credentials."""
    return {
        k: v
        for k, v in request_headers.items()
        if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() not in DENIED_HEADERS
    }


def match_prefix(path: str) -> Tuple[Optional[str], str]:
    """Return (provider name or None, path with the prefix removed)."""
    for prefix, provider in ROUTE_PREFIXES:
        if path == prefix or path.startswith(prefix + "/"):
            return provider, path[len(prefix):] or "/"
    return None, path


class Router:
    def __init__(self, providers: Dict[str, Provider], default_provider: str):
        if default_provider not in providers:
            raise ValueError(f"Unknown default provider: {default_provider}")
        self.providers = providers
        self.default_provider = default_provider

    @classmethod
    def from_config(cls, config: Config) -> "Router":
        providers = {
            name: Provider(
                name=name,
                base_url=config.base_url_for(name),
                auth_style=style,
                auth_name=auth_name,
            )
            for name, (style, auth_name) in PROVIDER_AUTH.items()
        }
        return cls(providers, config.default_provider)

    def route(
        self, path: str, query_string: str, headers: Dict[str, str]
    ) -> Route:
        name, upstream_path = match_prefix(path)
        provider = self.providers[name or self.default_provider]

        params = parse_qsl(query_string, keep_blank_values=True) if query_string else []
        if provider.auth_style is AuthStyle.QUERY:
            params = [(k, v) for k, v in params if k != provider.auth_name]

        return Route(
            provider=provider,
            path=upstream_path,
            params=params,
            headers=prepare_headers(headers),
        )
