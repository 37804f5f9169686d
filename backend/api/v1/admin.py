from fastapi import APIRouter, Depends
from schemas.user_schema import ConfigUpdateRequest, CurrentUser
from api.dependencies import admin_required_fast
from core.errors import RewardError, INTERNAL
from db.session import get_ledger_store
from db.store import LedgerStore
from services.config_service import get_reward_config, update_reward_config
from services.ranking_service import update_rankings
from services.referral_service import sync_referral_counts
from utils.responses import no_store_json
from utils.timing import timeit
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@timeit()
@router.get("/admin/config")
async def read_config(current_user: CurrentUser = Depends(admin_required_fast), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await get_reward_config(store))

@timeit()
@router.put("/admin/config")
async def write_config(request: ConfigUpdateRequest, current_user: CurrentUser = Depends(admin_required_fast), store: LedgerStore = Depends(get_ledger_store)):
    logger.info(f"Config update by {current_user.uid}: {sorted(request.overrides)}")
    return no_store_json(await update_reward_config(store, request.overrides))

@timeit()
@router.post("/admin/rankings/refresh")
async def refresh_rankings(current_user: CurrentUser = Depends(admin_required_fast), store: LedgerStore = Depends(get_ledger_store)):
    snapshot = await update_rankings(store)
    if snapshot is None:
        raise RewardError(INTERNAL, "Rankings update failed")
    return no_store_json(snapshot)

@timeit()
@router.post("/admin/referrals/sync")
async def sync_referrals(current_user: CurrentUser = Depends(admin_required_fast), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await sync_referral_counts(store))
