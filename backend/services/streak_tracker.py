from typing import Dict, NamedTuple, Optional
from utils.dates import LocalDay


class StreakUpdate(NamedTuple):
    streak: int
    bonus: int
    # False when attendance for today was already recorded
    advanced: bool


def advance_streak(
    prior_streak: int,
    last_attendance_date: Optional[str],
    day: LocalDay,
    milestones: Dict[int, int],
) -> StreakUpdate:
    """Record attendance for ``day.today`` and compute any milestone bonus.

    The bonus is paid only on the call that moves the streak onto a
    milestone; later rewards on the same day see ``advanced=False``.
    """
    if last_attendance_date == day.today:
        return StreakUpdate(streak=prior_streak, bonus=0, advanced=False)
    if last_attendance_date == day.yesterday:
        streak = prior_streak + 1
    else:
        streak = 1
    return StreakUpdate(streak=streak, bonus=milestones.get(streak, 0), advanced=True)
