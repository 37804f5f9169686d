import asyncio
import logging
import re
from typing import Any, Dict, Optional

from core.config import settings
from db.models.ranking import RANKINGS_KEY, SYSTEM, RankingEntry, RankingSnapshot
from db.models.user import USERS
from db.store import LedgerStore
from utils.dates import utc_now
from utils.timing import timeit

logger = logging.getLogger(__name__)

_EMAIL_MASK = re.compile(r"(.{2})(.*)(@.*)")

_refresh_lock = asyncio.Lock()


def mask_email(email: Optional[str]) -> Optional[str]:
    """Keep the first two characters and the domain: ``ab***@example.com``."""
    if not email:
        return email
    return _EMAIL_MASK.sub(r"\1***\3", email, count=1)


@timeit("update_rankings")
async def update_rankings(store: LedgerStore, size: Optional[int] = None) -> Optional[Dict[str, Any]]:
    """Publish the top accounts by points to ``system/rankings``.

    Failures are logged and swallowed; the previous snapshot stays in place.
    """
    size = size or settings.RANKINGS_SIZE
    async with _refresh_lock:
        try:
            top = await store.top(USERS, "points", size)
            snapshot = RankingSnapshot(
                top10=[
                    RankingEntry(email=mask_email(doc.get("email")), points=int(doc.get("points") or 0))
                    for _, doc in top
                ],
                updated_at=utc_now(),
            )
            await store.put(SYSTEM, RANKINGS_KEY, snapshot.model_dump())
            logger.info(f"Rankings updated with {len(snapshot.top10)} entries")
            return snapshot.model_dump(mode="json")
        except Exception as e:
            logger.error(f"Rankings update failed: {e}")
            return None


async def run_rankings_scheduler(store: LedgerStore, interval: Optional[int] = None) -> None:
    """Refresh rankings every ``interval`` seconds until cancelled."""
    interval = interval or settings.RANKINGS_INTERVAL_SECONDS
    logger.info(f"Rankings scheduler started (every {interval}s)")
    while True:
        await update_rankings(store)
        await asyncio.sleep(interval)
