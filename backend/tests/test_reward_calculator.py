"""
Unit tests for reward draws, streaks and the roulette gate.
"""
import pytest

from conftest import FixedDraw, TODAY, YESTERDAY
from db.models.user import DailyCounter, UserAccount
from core.errors import RewardError, FAILED_PRECONDITION, RESOURCE_EXHAUSTED
from services.reward_calculator import (
    AD_BUCKETS,
    AD_CHANNEL,
    ROULETTE_BUCKETS,
    ROULETTE_CHANNEL,
    RandomDraw,
    draw_reward,
    select_bucket,
)
from services.roulette_gate import RouletteState, derive_roulette_state, ensure_spin_allowed
from services.streak_tracker import advance_streak
from utils.dates import LocalDay

DAY = LocalDay(today=TODAY, yesterday=YESTERDAY)
MILESTONES = {7: 100, 15: 200, 30: 500}


@pytest.mark.unit
class TestRewardCalculator:

    @pytest.mark.parametrize("roll,expected", [
        (0.01, (90, 100)),
        (2, (90, 100)),
        (2.01, (101, 129)),
        (70, (101, 129)),
        (70.5, (130, 200)),
        (98, (130, 200)),
        (98.01, (201, 250)),
        (100, (201, 250)),
    ])
    def test_ad_bucket_boundaries(self, roll, expected):
        assert select_bucket(roll, AD_BUCKETS) == expected

    @pytest.mark.parametrize("roll,expected", [
        (0.5, (100, 130)),
        (70, (100, 130)),
        (70.01, (131, 250)),
        (100, (131, 250)),
    ])
    def test_roulette_bucket_boundaries(self, roll, expected):
        assert select_bucket(roll, ROULETTE_BUCKETS) == expected

    def test_draw_uses_strategy(self):
        draw = FixedDraw(roll=99.0, amount=240)
        assert draw_reward(AD_CHANNEL, draw) == 240
        assert draw.picked == [(201, 250)]

    def test_unknown_channel_rejected(self):
        with pytest.raises(ValueError):
            draw_reward("lottery", FixedDraw())

    def test_random_draw_stays_in_range(self):
        draw = RandomDraw(seed=7)
        for _ in range(500):
            assert 0 < draw.roll() <= 100
            assert 90 <= draw_reward(AD_CHANNEL, draw) <= 250
            assert 100 <= draw_reward(ROULETTE_CHANNEL, draw) <= 250

    def test_seeded_draws_repeat(self):
        first = [draw_reward(AD_CHANNEL, RandomDraw(seed=42)) for _ in range(3)]
        second = [draw_reward(AD_CHANNEL, RandomDraw(seed=42)) for _ in range(3)]
        assert first == second


@pytest.mark.unit
class TestStreakTracker:

    def test_first_attendance_starts_streak(self):
        update = advance_streak(0, None, DAY, MILESTONES)
        assert update.streak == 1
        assert update.bonus == 0
        assert update.advanced

    def test_consecutive_day_reaches_milestone(self):
        update = advance_streak(6, YESTERDAY, DAY, MILESTONES)
        assert update.streak == 7
        assert update.bonus == 100

    def test_same_day_does_not_repeat_bonus(self):
        update = advance_streak(7, TODAY, DAY, MILESTONES)
        assert update.streak == 7
        assert update.bonus == 0
        assert not update.advanced

    def test_gap_resets_streak(self):
        update = advance_streak(14, "2024-05-07", DAY, MILESTONES)
        assert update.streak == 1
        assert update.bonus == 0

    @pytest.mark.parametrize("prior,bonus", [(14, 200), (29, 500), (30, 0)])
    def test_later_milestones(self, prior, bonus):
        assert advance_streak(prior, YESTERDAY, DAY, MILESTONES).bonus == bonus


@pytest.mark.unit
class TestRouletteGate:

    def _user(self, spins=0, spin_ads=0, epoch=TODAY) -> UserAccount:
        return UserAccount(
            uid="u1",
            roulette_spins_today=DailyCounter(value=spins, epoch=epoch),
            spin_ads_today=DailyCounter(value=spin_ads, epoch=epoch),
        )

    @pytest.mark.parametrize("spins,spin_ads,state", [
        (0, 0, RouletteState.NO_SPINS_TODAY),
        (0, 1, RouletteState.NO_SPINS_TODAY),
        (1, 0, RouletteState.FIRST_SPIN_DONE),
        (1, 1, RouletteState.SECOND_SPIN_UNLOCKED),
        (2, 1, RouletteState.EXHAUSTED),
    ])
    def test_state_derivation(self, spins, spin_ads, state):
        assert derive_roulette_state(self._user(spins, spin_ads), TODAY) == state

    def test_yesterdays_spins_do_not_count(self):
        user = self._user(spins=2, spin_ads=1, epoch=YESTERDAY)
        assert derive_roulette_state(user, TODAY) == RouletteState.NO_SPINS_TODAY

    def test_gate_errors(self):
        with pytest.raises(RewardError) as exc:
            ensure_spin_allowed(RouletteState.FIRST_SPIN_DONE)
        assert exc.value.code == FAILED_PRECONDITION
        with pytest.raises(RewardError) as exc:
            ensure_spin_allowed(RouletteState.EXHAUSTED)
        assert exc.value.code == RESOURCE_EXHAUSTED
        ensure_spin_allowed(RouletteState.NO_SPINS_TODAY)
        ensure_spin_allowed(RouletteState.SECOND_SPIN_UNLOCKED)
