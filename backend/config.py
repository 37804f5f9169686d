from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
import logging

logger = logging.getLogger(__name__)


class RewardConfig(BaseModel):
    """Reward tunables shared by every ledger transaction.

    ``DEFAULT_CONFIG`` is the immutable baseline; overrides persisted by admins
    are merged on top of it each time a transaction reads the config.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    # Global tunables (names match the persisted override document)
    self_earning_limit: int = 7500
    referral_activation_threshold: int = 10
    referral_bonus_activation: int = 500

    # Ad missions
    ad_cooldown_seconds: int = 30
    max_daily_ads: int = 50

    # Fallback path when ad playback fails
    max_daily_fallbacks: int = 20
    fallback_reward_points: int = 50

    # Roulette unlock ad, per day
    max_daily_spin_ads: int = 1

    # Per-IP abuse controls
    ip_daily_request_limit: int = 200
    ip_ban_hours: int = 24

    # tier (ads watched today) -> points
    mission_rewards: Dict[int, int] = {10: 50, 30: 100, 50: 200}
    # streak length -> one-time bonus
    streak_bonuses: Dict[int, int] = {7: 100, 15: 200, 30: 500}
    # (minimum referral_count, percent), highest threshold first
    referral_commission_tiers: List[Tuple[int, int]] = [(50, 10), (30, 8), (10, 7), (0, 5)]

    @field_validator("referral_commission_tiers")
    @classmethod
    def _sort_tiers(cls, tiers: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        if not tiers:
            raise ValueError("at least one commission tier is required")
        return sorted(tiers, key=lambda t: t[0], reverse=True)

    def commission_percent(self, referral_count: int) -> int:
        for min_count, percent in self.referral_commission_tiers:
            if referral_count >= min_count:
                return percent
        return 0

    def with_overrides(self, overrides: Optional[Dict[str, Any]]) -> "RewardConfig":
        """Return a new config with persisted overrides applied (self is unchanged)."""
        if not overrides:
            return self
        merged = self.model_dump()
        merged.update({k: v for k, v in overrides.items() if k in type(self).model_fields})
        return RewardConfig.model_validate(merged)


DEFAULT_CONFIG = RewardConfig()


def merge_config(overrides: Optional[Dict[str, Any]]) -> RewardConfig:
    """Defaults plus persisted overrides; unusable overrides fall back to defaults."""
    try:
        return DEFAULT_CONFIG.with_overrides(overrides)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid reward config overrides: {e}")
        return DEFAULT_CONFIG
