from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

SYSTEM = "system"
RANKINGS_KEY = "rankings"


class RankingEntry(BaseModel):
    email: Optional[str] = None
    points: int = 0


class RankingSnapshot(BaseModel):
    """Anonymized leaderboard published to ``system/rankings``."""

    top10: List[RankingEntry] = Field(default_factory=list)
    updated_at: datetime
