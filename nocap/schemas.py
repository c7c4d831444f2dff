from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


HealthStatus = Literal["healthy", "degraded", "unhealthy"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WireModel(BaseModel):
    # Python side uses snake_case; JSON on the wire uses camelCase (blobId, factId, ...).
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
