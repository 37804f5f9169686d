"""Per-request anti-abuse controls for the ad reward path.

Two layers: the client signs every ad completion with the shared secret, and
each source IP gets a daily request budget. Exceeding the budget bans the IP
for ``ip_ban_hours``. The IP checks run inside the caller's ledger
transaction so that concurrent requests cannot both slip under the limit.
"""
import hashlib
import hmac
import logging
import re
from datetime import datetime, timedelta
from typing import Optional, Union

from config import RewardConfig
from core.config import settings
from core.errors import RewardError, PERMISSION_DENIED, RESOURCE_EXHAUSTED
from db.models.fraud import BANNED_IPS, IP_ACTIVITY, BanRecord, IPActivityCounter, activity_key
from db.store import LedgerTransaction

logger = logging.getLogger(__name__)

UNKNOWN_IP = "unknown"

_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9]")


def compute_ad_signature(uid: str, timestamp: Union[int, str], secret: Optional[str] = None) -> str:
    """Hex HMAC-SHA256 over ``"{uid}_{timestamp}"``, as the client computes it."""
    key = (secret or settings.AD_REWARD_SECRET).encode("utf-8")
    payload = f"{uid}_{timestamp}".encode("utf-8")
    return hmac.new(key, payload, hashlib.sha256).hexdigest()


def verify_ad_signature(uid: str, timestamp: Union[int, str, None], signature: Optional[str]) -> None:
    if timestamp is None or not signature:
        logger.warning(f"Unsigned ad reward request from {uid}")
        raise RewardError(PERMISSION_DENIED, "Signature verification failed")
    expected = compute_ad_signature(uid, timestamp)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning(f"Bad ad reward signature from {uid}")
        raise RewardError(PERMISSION_DENIED, "Signature verification failed")


def normalize_ip(ip: Optional[str]) -> str:
    """Storage-safe key for a source address (also accepts an X-Forwarded-For list)."""
    first_hop = (ip or "").split(",")[0].strip().lower()
    if not first_hop or first_hop == UNKNOWN_IP:
        return UNKNOWN_IP
    return _UNSAFE_KEY_CHARS.sub("_", first_hop)


async def enforce_ip_limit(
    txn: LedgerTransaction,
    ip: Optional[str],
    day: str,
    now: datetime,
    config: RewardConfig,
) -> Optional[RewardError]:
    """Check the ban list and count this request against the IP's daily budget.

    Raises for an active ban. When the budget is already spent, writes a ban
    into ``txn`` and returns the rejection instead of raising it: the caller
    commits the ban and then raises, so the ban survives the rejection.
    """
    ip_key = normalize_ip(ip)
    if ip_key == UNKNOWN_IP:
        return None

    ban = BanRecord.from_document(ip_key, await txn.get(BANNED_IPS, ip_key))
    if ban is not None and ban.is_active(now):
        raise RewardError(PERMISSION_DENIED, "This IP address is blocked")

    counter = IPActivityCounter.from_document(day, ip_key, await txn.get(IP_ACTIVITY, activity_key(day, ip_key)))
    if counter.count >= config.ip_daily_request_limit:
        ban = BanRecord(ip_key=ip_key, ip=(ip or "").split(",")[0].strip(), expires_at=now + timedelta(hours=config.ip_ban_hours))
        txn.set(BANNED_IPS, ip_key, ban.to_document())
        logger.warning(f"Banning IP {ip_key} until {ban.expires_at.isoformat()} after {counter.count} requests on {day}")
        return RewardError(RESOURCE_EXHAUSTED, "Too many requests from this IP address; it has been blocked")

    txn.set(IP_ACTIVITY, counter.key, counter.incremented(now).to_document())
    return None
