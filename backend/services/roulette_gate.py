from enum import Enum
from core.errors import RewardError, RESOURCE_EXHAUSTED, FAILED_PRECONDITION
from db.models.user import UserAccount


class RouletteState(str, Enum):
    NO_SPINS_TODAY = "no_spins_today"
    FIRST_SPIN_DONE = "first_spin_done"
    SECOND_SPIN_UNLOCKED = "second_spin_unlocked"
    EXHAUSTED = "exhausted"


def derive_roulette_state(user: UserAccount, today: str) -> RouletteState:
    """Roulette state is never stored; it follows from today's counters."""
    spins = user.roulette_spins_today.current(today)
    if spins <= 0:
        return RouletteState.NO_SPINS_TODAY
    if spins >= 2:
        return RouletteState.EXHAUSTED
    if user.spin_ads_today.current(today) >= 1:
        return RouletteState.SECOND_SPIN_UNLOCKED
    return RouletteState.FIRST_SPIN_DONE


def ensure_spin_allowed(state: RouletteState) -> None:
    if state == RouletteState.EXHAUSTED:
        raise RewardError(RESOURCE_EXHAUSTED, "All roulette spins for today have been used")
    if state == RouletteState.FIRST_SPIN_DONE:
        raise RewardError(FAILED_PRECONDITION, "Watch an ad to unlock the second roulette spin")
