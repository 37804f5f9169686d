from datetime import datetime
from typing import Any, Dict, Optional, Set
from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from utils.dates import as_utc

USERS = "users"


class DailyCounter(BaseModel):
    """A counter that only means something on the day named by ``epoch``.

    Nothing ever zeroes it: reads against another day see 0 and the next
    increment restarts it under the new epoch.
    """

    value: int = 0
    epoch: Optional[str] = None

    def current(self, today: str) -> int:
        return self.value if self.epoch == today else 0

    def incremented(self, today: str, amount: int = 1) -> "DailyCounter":
        return DailyCounter(value=self.current(today) + amount, epoch=today)


class DailyTierSet(BaseModel):
    """Mission tiers claimed on the day named by ``epoch``."""

    tiers: Set[int] = Field(default_factory=set)
    epoch: Optional[str] = None

    def current(self, today: str) -> Set[int]:
        return set(self.tiers) if self.epoch == today else set()

    def with_tier(self, today: str, tier: int) -> "DailyTierSet":
        return DailyTierSet(tiers=self.current(today) | {tier}, epoch=today)

    @field_serializer("tiers")
    def _serialize_tiers(self, tiers: Set[int]):
        return sorted(tiers)


class UserAccount(BaseModel):
    """Ledger view of a ``users/{uid}`` document."""

    model_config = ConfigDict(extra="ignore")

    uid: str
    # Owned by the sign-up collaborator
    email: Optional[str] = None
    referral_code: Optional[str] = None

    points: int = 0
    self_earned_today: DailyCounter = Field(default_factory=DailyCounter)
    referral_earned_today: DailyCounter = Field(default_factory=DailyCounter)

    ad_count_today: DailyCounter = Field(default_factory=DailyCounter)
    total_ad_count: int = 0
    last_ad_watched: Optional[datetime] = None

    roulette_spins_today: DailyCounter = Field(default_factory=DailyCounter)
    spin_ads_today: DailyCounter = Field(default_factory=DailyCounter)
    fallbacks_today: DailyCounter = Field(default_factory=DailyCounter)

    attendance_streak: int = 0
    last_attendance_date: Optional[str] = None
    attendance_history: Set[str] = Field(default_factory=set)

    mission_claims: DailyTierSet = Field(default_factory=DailyTierSet)

    referred_by: Optional[str] = None
    # Maintained by the referral sync job; never written by reward transactions
    referral_count: int = 0

    @field_validator("last_ad_watched")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value)

    @field_serializer("attendance_history")
    def _serialize_history(self, history: Set[str]):
        return sorted(history)

    @classmethod
    def from_document(cls, uid: str, doc: Dict[str, Any]) -> "UserAccount":
        data = {k: v for k, v in doc.items() if k != "_id"}
        data["uid"] = uid
        return cls.model_validate(data)

    def to_document(self) -> Dict[str, Any]:
        """Fields a reward transaction may write back."""
        return self.model_dump(exclude={"uid", "email", "referral_code", "referral_count"})
