from collections import Counter
from typing import Any, Dict, Optional
import logging
from config import RewardConfig
from core.errors import RewardError, ALREADY_EXISTS, INVALID_ARGUMENT, NOT_FOUND
from db.models.user import USERS, UserAccount
from db.store import LedgerStore, LedgerTransaction
from utils.dates import LocalDay
from utils.timing import timeit

logger = logging.getLogger(__name__)

def referral_commission(base_reward: int, referral_count: int, config: RewardConfig) -> int:
    """floor(base_reward * rate), with the rate tiered by the referrer's referral count."""
    return base_reward * config.commission_percent(referral_count) // 100

async def apply_referral_commission(
    txn: LedgerTransaction,
    user: UserAccount,
    base_reward: int,
    day: LocalDay,
    config: RewardConfig,
) -> int:
    """Credit the referrer of ``user`` inside the same transaction.

    Only the base ad reward counts; streak bonuses are excluded by the caller.
    Returns the commission written (0 when there is nothing to credit).
    """
    referrer_uid = user.referred_by
    if not referrer_uid or referrer_uid == user.uid:
        return 0
    doc = await txn.get(USERS, referrer_uid)
    if doc is None:
        logger.warning(f"Referrer {referrer_uid} of {user.uid} not found; skipping commission")
        return 0
    referrer = UserAccount.from_document(referrer_uid, doc)
    bonus = referral_commission(base_reward, referrer.referral_count, config)
    if bonus <= 0:
        return 0
    txn.update(USERS, referrer_uid, {
        "points": referrer.points + bonus,
        "referral_earned_today": referrer.referral_earned_today.incremented(day.today, bonus).model_dump(),
    })
    return bonus

@timeit("submit_referral_code")
async def submit_referral_code(store: LedgerStore, uid: str, referral_code: Optional[str]) -> Dict[str, Any]:
    """Attach the caller to the owner of ``referral_code``; the referrer can be set only once."""
    code = (referral_code or "").strip()
    found = await store.find_one(USERS, "referral_code", code) if code else None
    if found is None:
        raise RewardError(NOT_FOUND, "Referral code not found")
    referrer_uid, _ = found
    if referrer_uid == uid:
        raise RewardError(INVALID_ARGUMENT, "You cannot use your own referral code")

    async def _txn(txn: LedgerTransaction) -> Dict[str, Any]:
        doc = await txn.get(USERS, uid)
        if doc is None:
            raise RewardError(NOT_FOUND, "Account not found")
        user = UserAccount.from_document(uid, doc)
        if user.referred_by:
            raise RewardError(ALREADY_EXISTS, "A referral code is already registered")
        txn.update(USERS, uid, {"referred_by": referrer_uid})
        return {"success": True}

    result = await store.run_transaction(_txn)
    logger.info(f"User {uid} registered referrer {referrer_uid}")
    return result

async def sync_referral_counts(store: LedgerStore) -> Dict[str, int]:
    """Recount referred accounts per referrer and fix drifted ``referral_count`` values."""
    counts: Counter = Counter()
    stored: Dict[str, int] = {}
    async for uid, doc in store.scan(USERS):
        stored[uid] = int(doc.get("referral_count") or 0)
        if doc.get("referred_by"):
            counts[doc["referred_by"]] += 1

    updated = 0
    for uid, current in stored.items():
        actual = counts.get(uid, 0)
        if actual == current:
            continue

        async def _txn(txn: LedgerTransaction, uid: str = uid, actual: int = actual) -> bool:
            if await txn.get(USERS, uid) is None:
                return False
            txn.update(USERS, uid, {"referral_count": actual})
            return True

        try:
            if await store.run_transaction(_txn):
                updated += 1
        except Exception as e:
            logger.error(f"Referral count sync failed for {uid}: {e}")
    logger.info(f"Referral count sync: scanned {len(stored)} accounts, updated {updated}")
    return {"scanned": len(stored), "updated": updated}
