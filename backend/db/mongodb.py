import logging
import asyncio
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
import certifi
from core.config import settings
from db.models.fraud import BANNED_IPS, IP_ACTIVITY
from db.models.user import USERS

logger = logging.getLogger(__name__)

_mongo_client: Optional[AsyncIOMotorClient] = None
_mongo_db: Optional[AsyncIOMotorDatabase] = None

def get_mongo_db() -> Optional[AsyncIOMotorDatabase]:
    global _mongo_client, _mongo_db
    if not settings.USE_MONGO:
        return None
    if _mongo_db is not None:
        return _mongo_db
    if not settings.MONGO_URI:
        logger.warning("USE_MONGO=true but MONGO_URI is not set")
        return None
    # Ban expiry and cooldown comparisons need aware datetimes back from the driver
    client_kwargs = {
        "serverSelectionTimeoutMS": 30000,
        "connectTimeoutMS": 20000,
        "socketTimeoutMS": 20000,
        "tz_aware": True,
    }
    # If connecting to Atlas or any TLS endpoint, pass CA bundle explicitly to avoid local OpenSSL issues
    if "mongodb.net" in settings.MONGO_URI or settings.MONGO_URI.startswith("mongodb+srv://"):
        client_kwargs.update({
            "tls": True,
            "tlsCAFile": certifi.where(),
            "retryWrites": True,
        })
    _mongo_client = AsyncIOMotorClient(settings.MONGO_URI, **client_kwargs)
    _mongo_db = _mongo_client[settings.MONGO_DB]
    return _mongo_db

async def init_mongo_indexes():
    db = get_mongo_db()
    if db is None:
        return
    # Retry ping and index creation to allow primary election / networking delays
    for attempt in range(1, 6):
        try:
            await db.command({"ping": 1})
            # Users
            await db[USERS].create_index("referral_code", unique=True, sparse=True, name="u_referral_code")
            await db[USERS].create_index("referred_by", name="i_referred_by")
            await db[USERS].create_index([("points", -1)], name="i_points_desc")
            # Fraud records expire on their own; the ledger still checks expires_at itself
            await db[IP_ACTIVITY].create_index("expires_at", expireAfterSeconds=0, name="ttl_ip_activity")
            await db[BANNED_IPS].create_index("expires_at", expireAfterSeconds=0, name="ttl_banned_ips")
            return
        except Exception as e:
            wait_s = min(2 ** attempt, 15)
            logger.warning(f"Mongo not ready (attempt {attempt}): {e}; retrying in {wait_s}s")
            await asyncio.sleep(wait_s)
    logger.error("Mongo index initialization failed after retries")

def close_mongo_client():
    global _mongo_client, _mongo_db
    if _mongo_client is not None:
        _mongo_client.close()
    _mongo_client = None
    _mongo_db = None
