"""
Tests for ad signatures and the per-IP request budget.
"""
import hashlib
import hmac
import pytest
from datetime import timedelta

from conftest import CLIENT_IP, NOW, FixedDraw, sign
from config import DEFAULT_CONFIG
from core.config import settings
from core.errors import RewardError, PERMISSION_DENIED, RESOURCE_EXHAUSTED
from db.models.fraud import BANNED_IPS, IP_ACTIVITY, activity_key
from db.models.user import USERS
from services.fraud_guard import (
    compute_ad_signature,
    enforce_ip_limit,
    normalize_ip,
    verify_ad_signature,
)
from services.ledger_service import request_ad_reward

IP_KEY = "203_0_113_7"
# Server day for NOW at the default offset
IP_DAY = "2024-05-10"


async def watch_ad(store, uid, ip=CLIENT_IP, now=NOW):
    payload = sign(uid)
    return await request_ad_reward(
        store, uid, payload["signature"], payload["timestamp"], ip,
        draw=FixedDraw(amount=120), now=now,
    )


@pytest.mark.unit
class TestSignatures:

    def test_matches_client_hmac(self):
        expected = hmac.new(
            settings.AD_REWARD_SECRET.encode(), b"u1_1715310000000", hashlib.sha256
        ).hexdigest()
        assert compute_ad_signature("u1", 1715310000000) == expected
        assert compute_ad_signature("u1", "1715310000000") == expected

    def test_accepts_valid_signature(self):
        verify_ad_signature("u1", 42, compute_ad_signature("u1", 42))
        verify_ad_signature("u1", 42, compute_ad_signature("u1", 42).upper())

    @pytest.mark.parametrize("uid,timestamp,signature", [
        ("u1", 42, None),
        ("u1", None, "abc"),
        ("u1", 42, ""),
        ("u1", 43, compute_ad_signature("u1", 42)),
        ("u2", 42, compute_ad_signature("u1", 42)),
    ])
    def test_rejects(self, uid, timestamp, signature):
        with pytest.raises(RewardError) as exc:
            verify_ad_signature(uid, timestamp, signature)
        assert exc.value.code == PERMISSION_DENIED


@pytest.mark.unit
class TestNormalizeIp:

    @pytest.mark.parametrize("raw,key", [
        ("203.0.113.7", "203_0_113_7"),
        (" 203.0.113.7 ", "203_0_113_7"),
        ("203.0.113.7, 10.0.0.1", "203_0_113_7"),
        ("2001:DB8::1", "2001_db8__1"),
        ("", "unknown"),
        (None, "unknown"),
        ("unknown", "unknown"),
    ])
    def test_keys(self, raw, key):
        assert normalize_ip(raw) == key


@pytest.mark.service
class TestIpLimit:

    @pytest.mark.asyncio
    async def test_counts_requests_per_day(self, store, make_user):
        uid = await make_user("u1")
        await watch_ad(store, uid)
        doc = await store.get(IP_ACTIVITY, activity_key(IP_DAY, IP_KEY))
        assert doc["count"] == 1
        assert doc["expires_at"] == NOW + timedelta(days=2)

    @pytest.mark.asyncio
    async def test_quota_rejection_rolls_back_ip_counter(self, store, make_user):
        uid = await make_user("u1", ad_count_today={"value": 50, "epoch": "2024-05-10"})
        with pytest.raises(RewardError):
            await watch_ad(store, uid)
        # Quota rejection aborts the whole transaction, counter included
        assert await store.get(IP_ACTIVITY, activity_key(IP_DAY, IP_KEY)) is None

    @pytest.mark.asyncio
    async def test_limit_bans_then_blocks(self, store, make_user):
        uid = await make_user("u1", points=10)
        await store.put(IP_ACTIVITY, activity_key(IP_DAY, IP_KEY), {"count": 200, "expires_at": NOW})

        with pytest.raises(RewardError) as exc:
            await watch_ad(store, uid)
        assert exc.value.code == RESOURCE_EXHAUSTED

        ban = await store.get(BANNED_IPS, IP_KEY)
        assert ban["ip"] == CLIENT_IP
        assert ban["expires_at"] == NOW + timedelta(hours=24)
        assert (await store.get(USERS, uid))["points"] == 10

        with pytest.raises(RewardError) as exc:
            await watch_ad(store, uid, now=NOW + timedelta(hours=1))
        assert exc.value.code == PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_ban_applies_to_every_account(self, store, make_user):
        other = await make_user("u2")
        await store.put(BANNED_IPS, IP_KEY, {"ip": CLIENT_IP, "expires_at": NOW + timedelta(hours=3)})
        with pytest.raises(RewardError) as exc:
            await watch_ad(store, other)
        assert exc.value.code == PERMISSION_DENIED

    @pytest.mark.asyncio
    async def test_expired_ban_is_ignored(self, store, make_user):
        uid = await make_user("u1")
        await store.put(BANNED_IPS, IP_KEY, {"ip": CLIENT_IP, "expires_at": NOW - timedelta(seconds=1)})
        result = await watch_ad(store, uid)
        assert result["success"] is True

    @pytest.mark.asyncio
    async def test_unknown_ip_skips_controls(self, store, make_user):
        uid = await make_user("u1")

        async def _txn(txn):
            return await enforce_ip_limit(txn, None, IP_DAY, NOW, DEFAULT_CONFIG)

        assert await store.run_transaction(_txn) is None
        assert await store.get(IP_ACTIVITY, activity_key(IP_DAY, "unknown")) is None
        assert (await watch_ad(store, uid, ip=None))["success"] is True

    @pytest.mark.asyncio
    async def test_two_hundredth_request_allowed(self, store, make_user):
        uid = await make_user("u1")
        await store.put(IP_ACTIVITY, activity_key(IP_DAY, IP_KEY), {"count": 199})
        await watch_ad(store, uid)
        assert (await store.get(IP_ACTIVITY, activity_key(IP_DAY, IP_KEY)))["count"] == 200
        assert await store.get(BANNED_IPS, IP_KEY) is None
