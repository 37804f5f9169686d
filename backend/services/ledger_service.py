"""Reward ledger: every point-granting operation runs as one transaction.

Each operation loads the effective config and the caller's account, checks
the daily self-earning cap, then the operation's own quota, and only then
writes. Daily counters carry the day they belong to, so a new day needs no
reset: stale counters simply read as zero. Every counter, per-IP budgets
included, is keyed by the service day, never by a client-supplied timezone.
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, NamedTuple, Optional, Union

from config import RewardConfig, merge_config
from core.errors import (
    RewardError,
    ALREADY_EXISTS,
    FAILED_PRECONDITION,
    INVALID_ARGUMENT,
    NOT_FOUND,
    RESOURCE_EXHAUSTED,
)
from db.models.config import GLOBAL_SETTINGS_KEY, SYS_CONFIG
from db.models.user import USERS, UserAccount
from db.store import LedgerStore, LedgerTransaction
from schemas.reward_schema import AdOutcome, FALLBACK_ELIGIBLE_OUTCOMES
from services.config_service import load_reward_config
from services.fraud_guard import enforce_ip_limit, verify_ad_signature
from services.referral_service import apply_referral_commission
from services.reward_calculator import AD_CHANNEL, ROULETTE_CHANNEL, DrawStrategy, draw_reward
from services.roulette_gate import derive_roulette_state, ensure_spin_allowed
from services.streak_tracker import advance_streak
from utils.dates import resolve_local_day, utc_now
from utils.timing import timeit

logger = logging.getLogger(__name__)


class _AdGrant(NamedTuple):
    base: int
    bonus: int
    streak: int
    commission: int


async def _load_account(txn: LedgerTransaction, uid: str) -> UserAccount:
    doc = await txn.get(USERS, uid)
    if doc is None:
        raise RewardError(NOT_FOUND, "Account not found")
    return UserAccount.from_document(uid, doc)


def _ensure_under_self_cap(user: UserAccount, today: str, config: RewardConfig) -> None:
    if user.self_earned_today.current(today) >= config.self_earning_limit:
        raise RewardError(
            RESOURCE_EXHAUSTED,
            f"Daily earning limit of {config.self_earning_limit}P reached",
        )


def _credit_self(user: UserAccount, today: str, amount: int) -> None:
    user.points += amount
    user.self_earned_today = user.self_earned_today.incremented(today, amount)


def _cooldown_remaining(user: UserAccount, now: datetime, config: RewardConfig) -> float:
    if user.last_ad_watched is None:
        return 0.0
    elapsed = (now - user.last_ad_watched).total_seconds()
    return max(0.0, config.ad_cooldown_seconds - elapsed)


@timeit("request_ad_reward")
async def request_ad_reward(
    store: LedgerStore,
    uid: str,
    signature: Optional[str],
    timestamp: Union[int, str, None],
    client_ip: Optional[str],
    *,
    draw: Optional[DrawStrategy] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    day = resolve_local_day(now)
    verify_ad_signature(uid, timestamp, signature)

    async def _txn(txn: LedgerTransaction) -> Union[_AdGrant, RewardError]:
        config = await load_reward_config(txn)
        rejection = await enforce_ip_limit(txn, client_ip, day.today, now, config)
        if rejection is not None:
            return rejection

        user = await _load_account(txn, uid)
        _ensure_under_self_cap(user, day.today, config)
        if _cooldown_remaining(user, now, config) > 0:
            raise RewardError(RESOURCE_EXHAUSTED, "Please wait before watching another ad")
        if user.ad_count_today.current(day.today) >= config.max_daily_ads:
            raise RewardError(RESOURCE_EXHAUSTED, f"Daily ad limit of {config.max_daily_ads} reached")

        base = draw_reward(AD_CHANNEL, draw)
        streak = advance_streak(user.attendance_streak, user.last_attendance_date, day, config.streak_bonuses)

        _credit_self(user, day.today, base + streak.bonus)
        user.last_ad_watched = now
        user.ad_count_today = user.ad_count_today.incremented(day.today)
        user.total_ad_count += 1
        user.attendance_streak = streak.streak
        user.last_attendance_date = day.today
        user.attendance_history = user.attendance_history | {day.today}
        txn.update(USERS, uid, user.to_document())

        commission = await apply_referral_commission(txn, user, base, day, config)
        return _AdGrant(base=base, bonus=streak.bonus, streak=streak.streak, commission=commission)

    outcome = await store.run_transaction(_txn)
    if isinstance(outcome, RewardError):
        raise outcome

    total = outcome.base + outcome.bonus
    logger.info(
        f"Ad reward for {uid}: base={outcome.base} streak={outcome.streak} "
        f"bonus={outcome.bonus} commission={outcome.commission}"
    )
    message = f"{outcome.base}P earned!"
    if outcome.bonus:
        message += f" {outcome.streak}-day streak bonus +{outcome.bonus}P"
    return {"success": True, "reward": total, "message": message}


@timeit("request_fallback_reward")
async def request_fallback_reward(
    store: LedgerStore,
    uid: str,
    outcome: Optional[AdOutcome] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fixed reward for an ad mission whose video did not complete."""
    if outcome is not None and outcome not in FALLBACK_ELIGIBLE_OUTCOMES:
        raise RewardError(INVALID_ARGUMENT, "Completed ads are rewarded through the ad reward")
    now = now or utc_now()
    day = resolve_local_day(now)

    async def _txn(txn: LedgerTransaction) -> int:
        config = await load_reward_config(txn)
        user = await _load_account(txn, uid)
        _ensure_under_self_cap(user, day.today, config)
        if user.fallbacks_today.current(day.today) >= config.max_daily_fallbacks:
            raise RewardError(RESOURCE_EXHAUSTED, f"Daily fallback limit of {config.max_daily_fallbacks} reached")

        amount = config.fallback_reward_points
        _credit_self(user, day.today, amount)
        user.fallbacks_today = user.fallbacks_today.incremented(day.today)
        txn.update(USERS, uid, user.to_document())
        return amount

    amount = await store.run_transaction(_txn)
    logger.info(f"Fallback reward for {uid}: {amount}P (outcome={outcome.value if outcome else 'unreported'})")
    return {"success": True, "reward": amount, "message": f"{amount}P earned!"}


@timeit("claim_daily_mission_reward")
async def claim_daily_mission_reward(
    store: LedgerStore,
    uid: str,
    tier: int,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    day = resolve_local_day(now)

    async def _txn(txn: LedgerTransaction) -> int:
        config = await load_reward_config(txn)
        if tier not in config.mission_rewards:
            raise RewardError(INVALID_ARGUMENT, f"Unknown mission tier: {tier}")
        user = await _load_account(txn, uid)
        _ensure_under_self_cap(user, day.today, config)
        if user.ad_count_today.current(day.today) < tier:
            raise RewardError(FAILED_PRECONDITION, f"Watch {tier} ads today to claim this mission")
        if tier in user.mission_claims.current(day.today):
            raise RewardError(ALREADY_EXISTS, "Mission reward already claimed today")

        reward = config.mission_rewards[tier]
        _credit_self(user, day.today, reward)
        user.mission_claims = user.mission_claims.with_tier(day.today, tier)
        txn.update(USERS, uid, user.to_document())
        return reward

    reward = await store.run_transaction(_txn)
    logger.info(f"Mission tier {tier} claimed by {uid}: {reward}P")
    return {"success": True, "reward": reward}


@timeit("request_roulette_reward")
async def request_roulette_reward(
    store: LedgerStore,
    uid: str,
    *,
    draw: Optional[DrawStrategy] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utc_now()
    day = resolve_local_day(now)

    async def _txn(txn: LedgerTransaction) -> int:
        config = await load_reward_config(txn)
        user = await _load_account(txn, uid)
        _ensure_under_self_cap(user, day.today, config)
        ensure_spin_allowed(derive_roulette_state(user, day.today))

        reward = draw_reward(ROULETTE_CHANNEL, draw)
        _credit_self(user, day.today, reward)
        user.roulette_spins_today = user.roulette_spins_today.incremented(day.today)
        txn.update(USERS, uid, user.to_document())
        return reward

    reward = await store.run_transaction(_txn)
    logger.info(f"Roulette reward for {uid}: {reward}P")
    return {"success": True, "reward": reward}


@timeit("request_spin_ad_reward")
async def request_spin_ad_reward(
    store: LedgerStore,
    uid: str,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Record the unlock ad for the second roulette spin. Grants no points."""
    now = now or utc_now()
    day = resolve_local_day(now)

    async def _txn(txn: LedgerTransaction) -> None:
        config = await load_reward_config(txn)
        user = await _load_account(txn, uid)
        if user.spin_ads_today.current(day.today) >= config.max_daily_spin_ads:
            raise RewardError(RESOURCE_EXHAUSTED, "The roulette unlock ad was already watched today")
        user.spin_ads_today = user.spin_ads_today.incremented(day.today)
        user.total_ad_count += 1
        txn.update(USERS, uid, user.to_document())

    await store.run_transaction(_txn)
    logger.info(f"Roulette unlock ad recorded for {uid}")
    return {"success": True}


async def get_account_status(
    store: LedgerStore,
    uid: str,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Read-only snapshot of the caller's counters for the current service day."""
    now = now or utc_now()
    day = resolve_local_day(now)
    doc = await store.get(USERS, uid)
    if doc is None:
        raise RewardError(NOT_FOUND, "Account not found")
    user = UserAccount.from_document(uid, doc)
    config = merge_config(await store.get(SYS_CONFIG, GLOBAL_SETTINGS_KEY))

    streak = user.attendance_streak
    if user.last_attendance_date not in (day.today, day.yesterday):
        streak = 0
    return {
        "uid": uid,
        "today": day.today,
        "points": user.points,
        "selfEarnedToday": user.self_earned_today.current(day.today),
        "selfEarningLimit": config.self_earning_limit,
        "referralEarnedToday": user.referral_earned_today.current(day.today),
        "adCountToday": user.ad_count_today.current(day.today),
        "maxDailyAds": config.max_daily_ads,
        "totalAdCount": user.total_ad_count,
        "adCooldownRemaining": math.ceil(_cooldown_remaining(user, now, config)),
        "fallbacksToday": user.fallbacks_today.current(day.today),
        "maxDailyFallbacks": config.max_daily_fallbacks,
        "rouletteState": derive_roulette_state(user, day.today).value,
        "spinAdsToday": user.spin_ads_today.current(day.today),
        "attendanceStreak": streak,
        "attendanceHistory": sorted(user.attendance_history),
        "missionClaims": sorted(user.mission_claims.current(day.today)),
        "missionRewards": {str(k): v for k, v in sorted(config.mission_rewards.items())},
        "referralCode": user.referral_code,
        "referredBy": user.referred_by,
        "referralCount": user.referral_count,
    }
