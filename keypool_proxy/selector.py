"""Key selection algorithms.

Both functions are pure: they look at the per-key states and the rotation
cursor and return the index of the key to dispense, or ``None`` when no key
is eligible. Advancing the cursor is the caller's job.
"""

from typing import AbstractSet, Optional, Sequence

from keypool_proxy.models import KeyState


def is_eligible(state: KeyState, now: float) -> bool:
    return not state.is_cooling_down(now)


def _scan_order(size: int, cursor: int):
    for offset in range(size):
        yield (cursor + offset) % size


def select_round_robin(
    states: Sequence[KeyState],
    cursor: int,
    now: float,
    exclude: AbstractSet[int] = frozenset(),
) -> Optional[int]:
    """Return the first eligible key at or after ``cursor``, wrapping around."""
    for index in _scan_order(len(states), cursor):
        if index in exclude:
            continue
        if is_eligible(states[index], now):
            return index
    return None


def select_least_used(
    states: Sequence[KeyState],
    cursor: int,
    now: float,
    exclude: AbstractSet[int] = frozenset(),
) -> Optional[int]:
    """Return the eligible key with the lowest usage count.

    Ties go to the key that comes first in scan order from ``cursor``.
    """
    best: Optional[int] = None
    for index in _scan_order(len(states), cursor):
        if index in exclude or not is_eligible(states[index], now):
            continue
        if best is None or states[index].usage_count < states[best].usage_count:
            best = index
    return best
