from typing import Any, Dict
import logging
from pydantic import ValidationError
from config import DEFAULT_CONFIG, RewardConfig, merge_config
from core.errors import RewardError, INVALID_ARGUMENT
from db.models.config import GLOBAL_SETTINGS_KEY, SYS_CONFIG
from db.store import LedgerStore, LedgerTransaction

logger = logging.getLogger(__name__)

async def load_reward_config(txn: LedgerTransaction) -> RewardConfig:
    """Effective config for one transaction: defaults plus persisted overrides."""
    overrides = await txn.get(SYS_CONFIG, GLOBAL_SETTINGS_KEY)
    return merge_config(overrides)

async def get_reward_config(store: LedgerStore) -> Dict[str, Any]:
    overrides = await store.get(SYS_CONFIG, GLOBAL_SETTINGS_KEY) or {}
    return {
        "effective": merge_config(overrides).model_dump(),
        "overrides": overrides,
    }

async def update_reward_config(store: LedgerStore, overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and persist overrides; keys not mentioned keep their current override."""
    unknown = sorted(set(overrides) - set(RewardConfig.model_fields))
    if unknown:
        raise RewardError(INVALID_ARGUMENT, f"Unknown config keys: {', '.join(unknown)}")

    async def _txn(txn: LedgerTransaction) -> Dict[str, Any]:
        current = await txn.get(SYS_CONFIG, GLOBAL_SETTINGS_KEY) or {}
        combined = {**current, **overrides}
        try:
            DEFAULT_CONFIG.with_overrides(combined)
        except ValidationError as e:
            raise RewardError(INVALID_ARGUMENT, f"Invalid config: {e.errors()[0].get('msg', 'invalid value')}")
        txn.update(SYS_CONFIG, GLOBAL_SETTINGS_KEY, overrides)
        return combined

    combined = await store.run_transaction(_txn)
    logger.info(f"Reward config overrides updated: {sorted(overrides)}")
    return {
        "effective": merge_config(combined).model_dump(),
        "overrides": combined,
    }
