from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import Field

from nocap.schemas import WireModel


Permission = Literal["read", "write", "analytics"]
Tier = Literal["free", "premium", "enterprise"]

VALID_PERMISSIONS = ("read", "write", "analytics")

TIER_REQUESTS_PER_HOUR: Dict[str, int] = {
    "free": 1000,
    "premium": 10000,
    "enterprise": 100000,
}


class RateLimit(WireModel):
    requests_per_hour: int


class APIKeyUsage(WireModel):
    created_at: datetime
    # Lifetime count of authorized calls; the hourly window is tracked separately.
    request_count: int = 0
    last_used_at: Optional[datetime] = None


class APIKey(WireModel):
    id: str
    # Secret. Returned in full only by the creation call.
    key: str
    name: str
    user_id: Optional[str] = None
    permissions: List[Permission] = Field(default_factory=list)
    tier: Tier = "free"
    rate_limit: RateLimit
    usage: APIKeyUsage
    active: bool = True


class RateLimitStatus(WireModel):
    limit: int
    remaining: int
    reset_at: int
    window_s: int = 3600

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_at),
            "X-RateLimit-Window": str(self.window_s),
        }
