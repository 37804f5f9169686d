from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from api.v1 import rewards, users, admin
from core.config import settings
from core.errors import RewardError, INTERNAL, STATUS_BY_CODE
from db.mongodb import init_mongo_indexes
from db.session import close_ledger_store, get_ledger_store
from db.store import TransactionConflictError
from services.ranking_service import run_rankings_scheduler
from utils.responses import error_json
import asyncio
from typing import Optional
from utils.logging_config import configure_logging, RequestContextMiddleware
from fastapi import Request

# Configure logging with date-based files and TTL retention
logger = configure_logging("pocket_rewards")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

_rankings_task: Optional[asyncio.Task] = None

@app.exception_handler(RewardError)
async def reward_error_handler(request: Request, exc: RewardError):
    logger.info(f"Rejected {request.url.path}: {exc.code} {exc.message}")
    return error_json(exc.code, exc.message, exc.status_code)

@app.exception_handler(TransactionConflictError)
async def conflict_error_handler(request: Request, exc: TransactionConflictError):
    logger.error(f"Transaction conflict at {request.url.path}: {exc}")
    return error_json(INTERNAL, "Please try again", STATUS_BY_CODE[INTERNAL])

# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error at {request.url.path}: {exc}")
    return error_json(INTERNAL, "Internal server error", STATUS_BY_CODE[INTERNAL])

# Add GZip compression for larger JSON payloads
app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture caller uid, client IP and API path
app.add_middleware(RequestContextMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rewards.router, tags=["Rewards"])
app.include_router(users.router, tags=["Users"])
app.include_router(admin.router, tags=["Admin"])

@app.on_event("startup")
async def startup_db_client():
    """Initialize the ledger store and background jobs"""
    global _rankings_task
    try:
        if settings.USE_MONGO:
            await init_mongo_indexes()
            logger.info("Mongo indexes ensured")
    except Exception as e:
        logger.warning(f"Mongo init skipped or failed: {e}")
    store = get_ledger_store()
    if settings.RANKINGS_SCHEDULER_ENABLED:
        _rankings_task = asyncio.create_task(run_rankings_scheduler(store))
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_db_client():
    """Application shutdown"""
    global _rankings_task
    if _rankings_task is not None:
        _rankings_task.cancel()
        try:
            await _rankings_task
        except asyncio.CancelledError:
            pass
        _rankings_task = None
    try:
        await close_ledger_store()
    except Exception as e:
        logger.warning(f"Ledger store close failed: {e}")
    logger.info("Application shutdown complete")

@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}

@app.get("/health")
async def health_check():
    # Actively check DB connectivity according to config
    if settings.USE_MONGO:
        try:
            from db.mongodb import get_mongo_db
            db = get_mongo_db()
            if db is not None:
                await db.command({"ping": 1})
                return {"status": "healthy", "database": "mongo_connected"}
        except Exception as e:
            logger.warning(f"Health Mongo check failed: {e}")
        return {"status": "degraded", "database": "mongo_unavailable"}
    return {"status": "healthy", "database": "memory"}
