"""
Developer insights over the stored facts: verification rates, region and
author breakdowns, tag cloud and time-bucketed trends.

Facts are placed in time by `metadata.updated` (falling back to
`metadata.created`); a fact with neither only shows up for timeframe "all".
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from nocap.errors import ValidationError
from nocap.models import Fact
from nocap.store.fact_index import fact_tags


TIMEFRAMES: Dict[str, Optional[timedelta]] = {
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}
GRANULARITIES = ("hourly", "daily", "weekly")

MAX_AUTHORS = 20
MAX_CLOUD_TAGS = 50
MAX_TREND_POINTS = 30
TOP_TAGS_PER_POINT = 5


def fact_time(fact: Fact) -> Optional[datetime]:
    for key in ("updated", "created"):
        raw = fact.metadata.get(key)
        if not isinstance(raw, str) or not raw:
            continue
        try:
            ts = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            continue
        return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    return None


def check_timeframe(timeframe: str) -> str:
    if timeframe not in TIMEFRAMES:
        raise ValidationError(f"Invalid timeframe {timeframe!r}. Valid: {', '.join(TIMEFRAMES)}")
    return timeframe


def filter_by_timeframe(facts: Iterable[Fact], timeframe: str, now: datetime) -> List[Fact]:
    window = TIMEFRAMES[check_timeframe(timeframe)]
    if window is None:
        return list(facts)
    cutoff = now - window
    out = []
    for fact in facts:
        ts = fact_time(fact)
        if ts is not None and ts >= cutoff:
            out.append(fact)
    return out


def _rate(part: int, whole: int) -> float:
    return 100.0 * part / whole if whole else 0.0


def _bucket(ts: datetime, granularity: str) -> str:
    ts = ts.astimezone(timezone.utc)
    if granularity == "hourly":
        return ts.strftime("%Y-%m-%dT%H:00")
    if granularity == "weekly":
        return (ts - timedelta(days=ts.weekday())).strftime("%Y-%m-%d")
    return ts.strftime("%Y-%m-%d")


def trend_points(facts: Sequence[Fact], granularity: str = "daily") -> List[Dict[str, Any]]:
    """Verified/total counts and top tags per time bucket, oldest first, last 30 buckets."""
    if granularity not in GRANULARITIES:
        raise ValidationError(f"Invalid granularity {granularity!r}. Valid: {', '.join(GRANULARITIES)}")

    buckets: Dict[str, Dict[str, Any]] = {}
    for fact in facts:
        ts = fact_time(fact)
        if ts is None:
            continue
        point = buckets.setdefault(_bucket(ts, granularity), {"verified": 0, "total": 0, "tags": {}})
        point["total"] += 1
        if fact.status == "verified":
            point["verified"] += 1
        for name, _category in fact_tags(fact.metadata):
            point["tags"][name] = point["tags"].get(name, 0) + 1

    out = []
    for date in sorted(buckets):
        point = buckets[date]
        top = sorted(point["tags"].items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_TAGS_PER_POINT]
        out.append(
            {
                "date": date,
                "verifiedCount": point["verified"],
                "totalCount": point["total"],
                "topTags": [name for name, _count in top],
            }
        )
    return out[-MAX_TREND_POINTS:]


def insights(facts: Sequence[Fact], category: Optional[str] = None) -> Dict[str, Any]:
    verified = [f for f in facts if f.status == "verified"]
    total_tag_uses = 0

    # tag name -> (count, category, verified)
    tag_counts: Dict[str, List[Any]] = {}
    categories: Dict[str, int] = {}
    regions: Dict[str, int] = {}
    authors: Dict[str, Tuple[int, int]] = {}

    for fact in facts:
        is_verified = fact.status == "verified"
        tags = fact_tags(fact.metadata)
        total_tag_uses += len(tags)
        for name, tag_category in tags:
            if tag_category:
                categories[tag_category] = categories.get(tag_category, 0) + 1
            if category and tag_category != category:
                continue
            entry = tag_counts.setdefault(name, [0, tag_category, 0])
            entry[0] += 1
            if is_verified:
                entry[2] += 1

        region = fact.metadata.get("region")
        if isinstance(region, str) and region.strip():
            regions[region.strip()] = regions.get(region.strip(), 0) + 1

        n, v = authors.get(fact.author, (0, 0))
        authors[fact.author] = (n + 1, v + (1 if is_verified else 0))

    cloud = sorted(tag_counts.items(), key=lambda kv: (-kv[1][0], kv[0]))[:MAX_CLOUD_TAGS]
    max_count = cloud[0][1][0] if cloud else 1

    return {
        "totalFacts": len(facts),
        "verifiedFacts": len(verified),
        "verificationRate": _rate(len(verified), len(facts)),
        "totalTags": len(tag_counts),
        "averageTagsPerFact": total_tag_uses / len(facts) if facts else 0.0,
        # No history is kept, so trend is always 0.
        "topCategories": [
            {"category": name, "count": count, "trend": 0}
            for name, count in sorted(categories.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
        "factsByRegion": [
            {"region": name, "count": count}
            for name, count in sorted(regions.items(), key=lambda kv: (-kv[1], kv[0]))
        ],
        "authorActivity": [
            {"author": name, "facts": n, "verificationRate": _rate(v, n)}
            for name, (n, v) in sorted(authors.items(), key=lambda kv: (-kv[1][0], kv[0]))[:MAX_AUTHORS]
        ],
        "dailyTrends": trend_points(facts, "daily"),
        "tagCloud": [
            {
                "name": name,
                "count": count,
                "category": tag_category,
                "size": math.ceil(count / max_count * 10),
            }
            for name, (count, tag_category, _verified) in cloud
        ],
    }
