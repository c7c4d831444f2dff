from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional

from pydantic import Field

from nocap.schemas import WireModel


class SourceCounts(WireModel):
    total_facts: int = 0
    total_comments: int = 0
    total_blobs: int = 0
    facts_by_status: Dict[str, int] = Field(default_factory=dict)


class IndexStats(WireModel):
    """Aggregate view of what is stored. Derived, never authoritative."""

    total_facts: int = 0
    total_comments: int = 0
    total_blobs: int = 0
    facts_by_status: Dict[str, int] = Field(default_factory=dict)
    # None until the first successful sync.
    last_synced_at: Optional[datetime] = None
    source: str = ""
