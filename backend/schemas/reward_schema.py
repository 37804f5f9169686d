from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Union

class AdOutcome(str, Enum):
    """Result reported by the ad SDK bridge for one presentation."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    LOAD_FAILED = "load_failed"
    SHOW_FAILED = "show_failed"

# Only ad-mission videos fall back; roulette unlock ads never do
FALLBACK_ELIGIBLE_OUTCOMES = {AdOutcome.SKIPPED, AdOutcome.LOAD_FAILED, AdOutcome.SHOW_FAILED}

class DayScopedRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Sent by older clients; daily quotas always follow the service day
    timezone_offset: Optional[int] = Field(default=None, alias="timezoneOffset")

class AdRewardRequest(DayScopedRequest):
    signature: Optional[str] = None
    timestamp: Optional[Union[int, str]] = None

class FallbackRewardRequest(DayScopedRequest):
    outcome: Optional[AdOutcome] = None

class RouletteRequest(DayScopedRequest):
    pass

class SpinAdRequest(DayScopedRequest):
    pass

class MissionClaimRequest(DayScopedRequest):
    tier: int

class ReferralCodeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    referral_code: Optional[str] = Field(default=None, alias="referralCode")
