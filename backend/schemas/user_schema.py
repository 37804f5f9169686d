from pydantic import BaseModel
from typing import Any, Dict, Optional

class CurrentUser(BaseModel):
    """Caller identity taken from the bearer token claims."""
    uid: str
    email: Optional[str] = None
    role: str = "user"

    class Config:
        extra = "ignore"

class ConfigUpdateRequest(BaseModel):
    overrides: Dict[str, Any]
