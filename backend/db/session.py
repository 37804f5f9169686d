from core.config import settings
from db.store import LedgerStore
from db.memory_store import InMemoryLedgerStore
from db.mongo_store import MongoLedgerStore
from db.mongodb import close_mongo_client, get_mongo_db
import logging
from typing import Optional

logger = logging.getLogger("pocket_rewards")

_store: Optional[LedgerStore] = None

def build_ledger_store() -> LedgerStore:
    """Pick the store backend according to settings."""
    if settings.USE_MONGO:
        db = get_mongo_db()
        if db is None:
            raise RuntimeError("USE_MONGO=true but MongoDB is not configured")
        logger.info("Ledger store: MongoDB")
        return MongoLedgerStore(db)
    logger.warning("USE_MONGO=false; using the in-memory ledger store (data is lost on restart)")
    return InMemoryLedgerStore(max_attempts=settings.TRANSACTION_MAX_ATTEMPTS)

def get_ledger_store() -> LedgerStore:
    """FastAPI dependency; the store handle is the only state shared across requests."""
    global _store
    if _store is None:
        _store = build_ledger_store()
    return _store

async def close_ledger_store():
    global _store
    if _store is not None:
        await _store.close()
    _store = None
    if settings.USE_MONGO:
        close_mongo_client()
