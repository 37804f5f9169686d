from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from core.config import settings
from core.errors import RewardError, PERMISSION_DENIED, UNAUTHENTICATED
from core.security import bearer_scheme, verify_token
from schemas.user_schema import CurrentUser
from services.reward_calculator import DrawStrategy, RandomDraw
import logging

logger = logging.getLogger(__name__)

async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> CurrentUser:
    """Build the caller from JWT claims; the ledger never trusts a uid from the body."""
    payload = verify_token(credentials.credentials) if credentials else None
    if not payload:
        raise RewardError(UNAUTHENTICATED, "Sign-in required")
    return CurrentUser(
        uid=payload["sub"],
        email=payload.get("email"),
        role=payload.get("role") or "user",
    )

# Fast path: trust JWT claims to verify admin role without a store hit
async def admin_required_fast(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if current_user.role != settings.ADMIN_ROLE:
        logger.warning(f"Admin endpoint denied for {current_user.uid}")
        raise RewardError(PERMISSION_DENIED, "Admin access required")
    return current_user

def get_client_ip(request: Request) -> Optional[str]:
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded
    return request.client.host if request.client else None

def get_draw_strategy() -> DrawStrategy:
    return RandomDraw()
