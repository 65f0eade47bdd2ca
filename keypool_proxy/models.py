"""Data models for the key pool."""

from dataclasses import dataclass
from typing import Optional

PROVIDER_GEMINI = "gemini"
PROVIDER_OPENAI = "openai"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDERS = (PROVIDER_GEMINI, PROVIDER_OPENAI, PROVIDER_ANTHROPIC)


@dataclass(frozen=True)
class KeyEntry:
    """A single credential, tagged with the provider it authenticates against."""

    provider: str
    credential: str

    def key_prefix(self) -> str:
        if len(self.credential) <= 11:
            return self.credential
        return f"{self.credential[:8]}...{self.credential[-3:]}"


@dataclass
class KeyState:
    """Mutable cooldown and usage tracking for one KeyEntry."""

    cooldown_until: Optional[float] = None
    usage_count: int = 0
    failure_count: int = 0
    last_status: Optional[int] = None
    last_used: Optional[float] = None
    last_error: Optional[float] = None

    def is_cooling_down(self, now: float) -> bool:
        return self.cooldown_until is not None and self.cooldown_until >= now
