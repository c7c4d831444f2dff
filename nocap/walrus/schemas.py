from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, Field

from nocap.schemas import HealthStatus, WireModel, utcnow


class BlobMetadata(WireModel):
    """What a backend hands back for a stored blob. Never mutated afterwards."""

    model_config = ConfigDict(frozen=True)

    blob_id: str
    # Availability proof returned by the network (or a mock stand-in).
    certificate: Optional[str] = None
    transaction_id: Optional[str] = None
    size: int = Field(ge=0)
    stored_at: datetime = Field(default_factory=utcnow)


class BackendHealth(WireModel):
    status: HealthStatus
    latency_ms: float = 0.0
    available_nodes: int = 0
    detail: str = ""
