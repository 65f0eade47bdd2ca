"""Key pool management."""

import asyncio
import logging
import time
from typing import AbstractSet, Callable, Dict, List, Optional

from keypool_proxy.config import Config, POLICY_LEAST_USED, POLICY_ROUND_ROBIN
from keypool_proxy.cooldown import CooldownPolicy
from keypool_proxy.models import KeyEntry, KeyState
from keypool_proxy.selector import select_least_used, select_round_robin

logger = logging.getLogger(__name__)

_SELECTORS = {
    POLICY_ROUND_ROBIN: select_round_robin,
    POLICY_LEAST_USED: select_least_used,
}


class KeyPool:
    """Fixed set of keys for one provider with cooldown and usage tracking.

    Selection and cursor advance happen under one lock, so concurrent
    requests never dispense from a stale cursor.
    """

    def __init__(
        self,
        provider: str,
        credentials: List[str],
        policy: str = POLICY_ROUND_ROBIN,
        cooldown_policy: Optional[CooldownPolicy] = None,
        clock: Callable[[], float] = time.time,
    ):
        if policy not in _SELECTORS:
            raise ValueError(f"Unknown selection policy: {policy}")

        self.provider = provider
        self.entries: List[KeyEntry] = [
            KeyEntry(provider=provider, credential=credential)
            for credential in credentials
        ]
        self.states: List[KeyState] = [KeyState() for _ in self.entries]
        self.cursor: int = 0
        self.policy = policy
        self.cooldown_policy = cooldown_policy or CooldownPolicy()
        self._select = _SELECTORS[policy]
        self._clock = clock
        self._lock: asyncio.Lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.entries)

    def key_id(self, index: int) -> str:
        return f"{self.provider}_{index + 1}"

    async def select_key(self, exclude: AbstractSet[int] = frozenset()) -> Optional[int]:
        async with self._lock:
            if not self.entries:
                return None
            index = self._select(self.states, self.cursor, self._clock(), exclude)
            if index is None:
                return None
            self.cursor = (index + 1) % len(self.entries)
            return index

    async def record_success(self, index: int) -> None:
        async with self._lock:
            state = self.states[index]
            state.usage_count += 1
            state.failure_count = 0
            state.last_used = self._clock()

    async def cool_down(self, index: int, status_code: Optional[int]) -> float:
        """Take a key out of rotation; returns the cooldown duration applied."""
        async with self._lock:
            now = self._clock()
            duration = self.cooldown_policy.duration(status_code)
            state = self.states[index]
            state.cooldown_until = now + duration
            state.failure_count += 1
            state.last_status = status_code
            state.last_error = now
            return duration

    async def reset_cooldowns(self) -> None:
        async with self._lock:
            for state in self.states:
                state.cooldown_until = None
                state.failure_count = 0

    def available_count(self) -> int:
        now = self._clock()
        return sum(1 for state in self.states if not state.is_cooling_down(now))

    def seconds_until_available(self) -> float:
        """Time until the earliest cooldown expires, zero if a key is free now."""
        now = self._clock()
        if not self.states or self.available_count():
            return 0.0
        earliest = min(
            state.cooldown_until
            for state in self.states
            if state.cooldown_until is not None
        )
        return max(0.0, earliest - now)

    def get_status(self) -> Dict[str, object]:
        return {
            "provider": self.provider,
            "policy": self.policy,
            "total_keys": len(self.entries),
            "available_keys": self.available_count(),
            "keys": [self._format_key_status(index) for index in range(len(self))],
        }

    def _format_key_status(self, index: int) -> Dict[str, object]:
        now = self._clock()
        entry = self.entries[index]
        state = self.states[index]
        cooling = state.is_cooling_down(now)
        return {
            "id": self.key_id(index),
            "key_prefix": entry.key_prefix(),
            "status": "cooldown" if cooling else "active",
            "cooldown_remaining": (
                round(state.cooldown_until - now, 2)
                if cooling and state.cooldown_until is not None
                else 0
            ),
            "usage_count": state.usage_count,
            "failure_count": state.failure_count,
            "last_status": state.last_status,
            "last_used": state.last_used,
            "last_error": state.last_error,
        }


def build_key_pools(
    config: Config, clock: Callable[[], float] = time.time
) -> Dict[str, KeyPool]:
    """Build one pool per provider that has keys configured."""
    cooldown_policy = CooldownPolicy.from_config(config)
    pools: Dict[str, KeyPool] = {}
    for provider, credentials in config.provider_keys().items():
        if not credentials:
            logger.info("No keys configured for %s; its routes will return 500", provider)
            continue
        pools[provider] = KeyPool(
            provider,
            credentials,
            policy=config.selection_policy,
            cooldown_policy=cooldown_policy,
            clock=clock,
        )
    return pools
