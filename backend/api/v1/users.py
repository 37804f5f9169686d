from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from schemas.reward_schema import ReferralCodeRequest
from schemas.user_schema import CurrentUser
from api.dependencies import get_current_user
from db.models.ranking import RANKINGS_KEY, SYSTEM
from db.session import get_ledger_store
from db.store import LedgerStore
from services.referral_service import submit_referral_code
from utils.responses import no_store_json
from utils.timing import timeit

router = APIRouter()

@timeit()
@router.get("/me")
async def read_users_me(current_user: CurrentUser = Depends(get_current_user)):
    return no_store_json(current_user.model_dump())

@timeit()
@router.post("/referrals/submit")
async def submit_referral(request: ReferralCodeRequest, current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    return no_store_json(await submit_referral_code(store, current_user.uid, request.referral_code))

@timeit()
@router.get("/rankings")
async def read_rankings(current_user: CurrentUser = Depends(get_current_user), store: LedgerStore = Depends(get_ledger_store)):
    snapshot = await store.get(SYSTEM, RANKINGS_KEY) or {"top10": [], "updated_at": None}
    snapshot.pop("_id", None)
    return no_store_json(jsonable_encoder(snapshot))
