from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from pydantic import BaseModel, field_validator
from utils.dates import as_utc

IP_ACTIVITY = "daily_ip_activity"
BANNED_IPS = "banned_ips"


class IPActivityCounter(BaseModel):
    """Requests seen from one normalized IP on one day."""

    day: str
    ip_key: str
    count: int = 0
    # Storage TTL; the counter is only consulted for ``day``
    expires_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return activity_key(self.day, self.ip_key)

    @classmethod
    def from_document(cls, day: str, ip_key: str, doc: Optional[Dict[str, Any]]) -> "IPActivityCounter":
        if not doc:
            return cls(day=day, ip_key=ip_key)
        return cls(day=day, ip_key=ip_key, count=int(doc.get("count", 0)), expires_at=doc.get("expires_at"))

    def incremented(self, now: datetime) -> "IPActivityCounter":
        return IPActivityCounter(
            day=self.day,
            ip_key=self.ip_key,
            count=self.count + 1,
            expires_at=self.expires_at or now + timedelta(days=2),
        )

    def to_document(self) -> Dict[str, Any]:
        return {"day": self.day, "ip_key": self.ip_key, "count": self.count, "expires_at": self.expires_at}


class BanRecord(BaseModel):
    ip_key: str
    ip: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_active(self, now: datetime) -> bool:
        return self.expires_at > now

    @classmethod
    def from_document(cls, ip_key: str, doc: Optional[Dict[str, Any]]) -> Optional["BanRecord"]:
        if not doc or not doc.get("expires_at"):
            return None
        return cls(ip_key=ip_key, ip=doc.get("ip", ""), expires_at=doc["expires_at"])

    def to_document(self) -> Dict[str, Any]:
        return {"ip": self.ip, "expires_at": self.expires_at}


def activity_key(day: str, ip_key: str) -> str:
    return f"{day}_{ip_key}"
