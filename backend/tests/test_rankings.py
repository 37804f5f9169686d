"""
Tests for the ranking snapshot job.
"""
import asyncio
import pytest
from unittest.mock import AsyncMock, patch

from db.models.ranking import RANKINGS_KEY, SYSTEM
from services.ranking_service import mask_email, run_rankings_scheduler, update_rankings


@pytest.mark.unit
@pytest.mark.parametrize("email,masked", [
    ("alice@example.com", "al***@example.com"),
    ("ab@example.com", "ab***@example.com"),
    ("a@example.com", "a@example.com"),
    (None, None),
])
def test_mask_email(email, masked):
    assert mask_email(email) == masked


@pytest.mark.service
class TestUpdateRankings:

    @pytest.mark.asyncio
    async def test_publishes_top_accounts(self, store, make_user):
        for i in range(12):
            await make_user(f"u{i}", email=f"user{i}@example.com", points=i * 100)

        snapshot = await update_rankings(store)

        stored = await store.get(SYSTEM, RANKINGS_KEY)
        assert len(stored["top10"]) == 10
        assert stored["top10"][0] == {"email": "us***@example.com", "points": 1100}
        assert stored["top10"][-1]["points"] == 200
        assert stored["updated_at"] is not None
        assert snapshot["top10"] == stored["top10"]

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, store):
        with patch.object(store, "top", AsyncMock(side_effect=RuntimeError("store down"))):
            assert await update_rankings(store) is None
        assert await store.get(SYSTEM, RANKINGS_KEY) is None

    @pytest.mark.asyncio
    async def test_scheduler_runs_until_cancelled(self, store):
        with patch("services.ranking_service.update_rankings", AsyncMock()) as job:
            task = asyncio.create_task(run_rankings_scheduler(store, interval=3600))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        job.assert_awaited_once_with(store)
