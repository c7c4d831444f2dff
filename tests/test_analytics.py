import asyncio
from datetime import datetime, timezone

import pytest

from nocap.analytics import filter_by_timeframe, insights, trend_points
from nocap.errors import ValidationError
from nocap.models import Fact
from nocap.service import FactService


NOW = datetime(2025, 6, 30, 12, 0, tzinfo=timezone.utc)


def _fact(fact_id: str, updated: str, **kw) -> Fact:
    metadata = dict(kw.pop("metadata", {}))
    metadata["updated"] = updated
    return Fact(id=fact_id, metadata=metadata, **kw)


FACTS = [
    _fact(
        "ocean",
        "2025-06-30T08:00:00+00:00",
        status="verified",
        author="anon-1",
        metadata={"tags": [{"name": "space", "category": "science"}, "ocean"], "region": "Solar System"},
    ),
    _fact(
        "centauri",
        "2025-06-25T10:00:00Z",
        status="review",
        author="anon-1",
        metadata={"tags": [{"name": "space", "category": "science"}], "region": "Solar System"},
    ),
    _fact(
        "photo",
        "2025-05-01T09:00:00+00:00",
        status="verified",
        author="anon-2",
        metadata={"tags": [{"name": "biology", "category": "science"}, {"name": "vote", "category": "politics"}]},
    ),
    Fact(id="undated", status="flagged", author="anon-3"),
]


@pytest.mark.parametrize(
    "timeframe,expected",
    [
        ("24h", {"ocean"}),
        ("7d", {"ocean", "centauri"}),
        ("90d", {"ocean", "centauri", "photo"}),
        ("all", {"ocean", "centauri", "photo", "undated"}),
    ],
)
def test_timeframe_filter_uses_updated_time(timeframe, expected):
    assert {f.id for f in filter_by_timeframe(FACTS, timeframe, NOW)} == expected


def test_unknown_timeframe_is_rejected():
    with pytest.raises(ValidationError):
        filter_by_timeframe(FACTS, "1y", NOW)


def test_insights_counts():
    out = insights(FACTS)
    assert out["totalFacts"] == 4
    assert out["verifiedFacts"] == 2
    assert out["verificationRate"] == 50.0
    assert out["totalTags"] == 4
    assert out["averageTagsPerFact"] == 5 / 4
    assert out["topCategories"][0] == {"category": "science", "count": 3, "trend": 0}
    assert out["factsByRegion"] == [{"region": "Solar System", "count": 2}]
    assert out["authorActivity"][0] == {"author": "anon-1", "facts": 2, "verificationRate": 50.0}

    cloud = {t["name"]: t for t in out["tagCloud"]}
    assert cloud["space"]["size"] == 10
    assert cloud["ocean"]["size"] == 5
    assert cloud["space"]["category"] == "science"


def test_insights_category_filter_limits_tags_only():
    out = insights(FACTS, category="politics")
    assert out["totalFacts"] == 4
    assert [t["name"] for t in out["tagCloud"]] == ["vote"]
    assert out["totalTags"] == 1


def test_insights_on_no_facts():
    out = insights([])
    assert out["verificationRate"] == 0.0
    assert out["averageTagsPerFact"] == 0.0
    assert out["tagCloud"] == []
    assert out["dailyTrends"] == []


def test_trend_points_by_granularity():
    daily = trend_points(FACTS, "daily")
    assert [p["date"] for p in daily] == ["2025-05-01", "2025-06-25", "2025-06-30"]
    assert daily[-1] == {"date": "2025-06-30", "verifiedCount": 1, "totalCount": 1, "topTags": ["ocean", "space"]}

    weekly = trend_points(FACTS, "weekly")
    # 2025-06-25 is a Wednesday, 2025-06-30 a Monday.
    assert [p["date"] for p in weekly] == ["2025-04-28", "2025-06-23", "2025-06-30"]

    assert trend_points(FACTS, "hourly")[-1]["date"] == "2025-06-30T08:00"

    with pytest.raises(ValidationError):
        trend_points(FACTS, "monthly")


def test_service_analytics_and_trends(blob_store):
    service = FactService(blob_store)

    async def run():
        await service.create_fact({"id": "F1", "status": "verified", "metadata": {"tags": ["space"]}})
        await service.create_fact({"id": "F2", "metadata": {"tags": ["biology"]}})

    asyncio.run(run())

    report = service.analytics("24h")
    assert report["timeframe"] == "24h"
    assert report["insights"]["totalFacts"] == 2
    assert report["insights"]["verificationRate"] == 50.0

    trends = service.trends("all", "daily", ["Space"])
    assert trends["tags"] == ["space"]
    assert trends["totalDataPoints"] == 1
    assert trends["trends"][0]["totalCount"] == 1

    with pytest.raises(ValidationError):
        service.trends("all", "daily", "space")
