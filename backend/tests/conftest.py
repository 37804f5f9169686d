"""
Pytest configuration and fixtures for the backend tests.
"""
import os
import tempfile

# Settings are read at import time; configure before importing the app
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("AD_REWARD_SECRET", "test-ad-reward-secret")
os.environ["USE_MONGO"] = "false"
os.environ["RANKINGS_SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="pocket-rewards-logs-"))

import pytest
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict, Optional
from faker import Faker
from httpx import ASGITransport, AsyncClient

from main import app
from api.dependencies import get_draw_strategy
from core.security import create_access_token
from db.memory_store import InMemoryLedgerStore
from db.models.user import USERS
from db.session import get_ledger_store
from services.fraud_guard import compute_ad_signature

# Initialize Faker for test data generation
fake = Faker()

# 12:00 on 2024-05-10 at the default UTC+9 offset
NOW = datetime(2024, 5, 10, 3, 0, tzinfo=timezone.utc)
TODAY = "2024-05-10"
YESTERDAY = "2024-05-09"
CLIENT_IP = "203.0.113.7"


class FixedDraw:
    """Draw strategy with a fixed roll; picks ``amount`` or the bucket minimum."""

    def __init__(self, roll: float = 50.0, amount: Optional[int] = None):
        self._roll = roll
        self._amount = amount
        self.picked = []

    def roll(self) -> float:
        return self._roll

    def pick(self, low: int, high: int) -> int:
        value = low if self._amount is None else self._amount
        assert low <= value <= high, f"{value} outside [{low}, {high}]"
        self.picked.append((low, high))
        return value


def sign(uid: str, timestamp: int = 1715310000000) -> Dict[str, Any]:
    return {"signature": compute_ad_signature(uid, timestamp), "timestamp": timestamp}


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def make_user(store: InMemoryLedgerStore):
    """Seed ``users/{uid}`` the way the sign-up collaborator would."""

    async def _make(uid: Optional[str] = None, **fields) -> str:
        uid = uid or fake.uuid4()
        doc = {
            "email": fake.email(),
            "referral_code": fake.bothify("??##??##").upper(),
            "points": 0,
        }
        doc.update(fields)
        await store.put(USERS, uid, doc)
        return uid

    return _make


@pytest.fixture
def draw() -> FixedDraw:
    return FixedDraw(roll=50.0, amount=120)


def bearer(uid: str, role: str = "user") -> Dict[str, str]:
    token = create_access_token({"sub": uid, "email": f"{uid}@example.com", "role": role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def async_client(store: InMemoryLedgerStore, draw: FixedDraw) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client bound to the in-memory store."""
    app.dependency_overrides[get_ledger_store] = lambda: store
    app.dependency_overrides[get_draw_strategy] = lambda: draw

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
