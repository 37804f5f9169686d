from fastapi import APIRouter, Depends
from typing import Optional
from schemas.reward_schema import AdRewardRequest, FallbackRewardRequest, MissionClaimRequest, RouletteRequest, SpinAdRequest
from schemas.user_schema import CurrentUser
from api.dependencies import get_client_ip, get_current_user, get_draw_strategy
from db.session import get_ledger_store
from db.store import LedgerStore
from services.ledger_service import (
    claim_daily_mission_reward,
    get_account_status,
    request_ad_reward,
    request_fallback_reward,
    request_roulette_reward,
    request_spin_ad_reward,
)
from services.reward_calculator import DrawStrategy
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@timeit()
@router.post("/rewards/ad")
async def ad_reward(
    request: AdRewardRequest,
    current_user: CurrentUser = Depends(get_current_user),
    client_ip: Optional[str] = Depends(get_client_ip),
    store: LedgerStore = Depends(get_ledger_store),
    draw: DrawStrategy = Depends(get_draw_strategy),
):
    return no_store_json(await request_ad_reward(
        store,
        current_user.uid,
        request.signature,
        request.timestamp,
        client_ip,
        draw=draw,
    ))

@timeit()
@router.post("/rewards/fallback")
async def fallback_reward(request: FallbackRewardRequest, current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await request_fallback_reward(store, current_user.uid, request.outcome))

@timeit()
@router.post("/rewards/roulette")
async def roulette_reward(
    request: RouletteRequest,
    current_user: CurrentUser = Depends(get_current_user),
    store: LedgerStore = Depends(get_ledger_store),
    draw: DrawStrategy = Depends(get_draw_strategy),
):
    return no_store_json(await request_roulette_reward(store, current_user.uid, draw=draw))

@timeit()
@router.post("/rewards/roulette/ad")
async def spin_ad_reward(request: SpinAdRequest, current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await request_spin_ad_reward(store, current_user.uid))

@timeit()
@router.post("/missions/claim")
async def claim_mission(request: MissionClaimRequest, current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await claim_daily_mission_reward(store, current_user.uid, request.tier))

@timeit()
@router.get("/rewards/status")
async def reward_status(current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await get_account_status(store, current_user.uid))
