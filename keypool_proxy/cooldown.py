"""How long a key stays out of rotation after a failed upstream call."""

from dataclasses import dataclass
from typing import Optional

from keypool_proxy.config import Config

RETRYABLE_STATUS_CODES = frozenset({401, 403, 429, 500, 502, 503, 504})
SERVER_ERROR_STATUS_CODES = frozenset({500, 502, 503, 504})
AUTH_STATUS_CODES = frozenset({401, 403})


@dataclass(frozen=True)
class CooldownPolicy:
    rate_limit_seconds: float = 300.0
    auth_seconds: float = 3600.0
    server_error_seconds: float = 60.0
    network_error_seconds: float = 60.0
    default_seconds: float = 10.0

    @classmethod
    def from_config(cls, config: Config) -> "CooldownPolicy":
        return cls(
            rate_limit_seconds=config.cooldown_rate_limit_seconds,
            auth_seconds=config.cooldown_auth_seconds,
            server_error_seconds=config.cooldown_server_error_seconds,
            network_error_seconds=config.cooldown_network_error_seconds,
            default_seconds=config.cooldown_default_seconds,
        )

    def duration(self, status_code: Optional[int]) -> float:
        """Cooldown in seconds; ``status_code=None`` means a transport failure."""
        if status_code is None:
            return self.network_error_seconds
        if status_code == 429:
            return self.rate_limit_seconds
        if status_code in AUTH_STATUS_CODES:
            return self.auth_seconds
        if status_code in SERVER_ERROR_STATUS_CODES:
            return self.server_error_seconds
        return self.default_seconds


def is_retryable(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES
