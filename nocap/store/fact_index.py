"""
Inverted indexes over stored facts (tag, keyword, category, author, region,
status). Derived data only: always rebuildable from the fact store.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from nocap.models import Fact
from nocap.schemas import utcnow


STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "from", "this", "have", "been",
        "were", "will", "their", "about", "which", "into", "over", "after",
        "before", "being", "under", "between", "within", "without", "they",
        "them", "those", "these", "there", "here", "such", "than", "then",
        "when", "while", "where", "what", "your", "yours", "ours", "hers",
        "him", "her", "how", "why", "who", "whom", "whose", "can", "could",
        "should", "would", "shall", "might", "must", "may", "also", "very",
    }
)

INDEX_NAMES = ("tags", "keywords", "categories", "authors", "regions", "statuses")

_NON_WORD = re.compile(r"[^\w\s-]")


def _text_keywords(text: str) -> List[str]:
    if not text:
        return []
    words = _NON_WORD.sub(" ", text.lower()).split()
    return [w for w in words if len(w) >= 3 and w not in STOP_WORDS]


def as_list(value: Any) -> List[Any]:
    # A bare string is one entry, not a sequence of characters.
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def fact_tags(metadata: Dict[str, Any]) -> List[Tuple[str, Optional[str]]]:
    # Tags arrive either as plain strings or as {"name", "category"} dicts.
    out: List[Tuple[str, Optional[str]]] = []
    for tag in as_list(metadata.get("tags")):
        if isinstance(tag, str) and tag.strip():
            out.append((tag.strip().lower(), None))
        elif isinstance(tag, dict) and str(tag.get("name") or "").strip():
            category = tag.get("category")
            out.append((str(tag["name"]).strip().lower(), str(category) if category else None))
    return out


class FactIndex:
    def __init__(self) -> None:
        self._indexes: Dict[str, Dict[str, Set[str]]] = {name: {} for name in INDEX_NAMES}
        # fact id -> every (index, key) it was filed under, for O(keys) removal.
        self._postings: Dict[str, Set[Tuple[str, str]]] = {}
        self.last_updated: datetime = utcnow()

    def __len__(self) -> int:
        return len(self._postings)

    def _add(self, index: str, key: str, fact_id: str) -> None:
        if not key:
            return
        self._indexes[index].setdefault(key, set()).add(fact_id)
        self._postings.setdefault(fact_id, set()).add((index, key))

    def index_fact(self, fact: Fact) -> None:
        """File `fact` under every key it carries, replacing any earlier filing."""
        self.remove_fact(fact.id)
        self._postings[fact.id] = set()

        meta = fact.metadata or {}
        for name, category in fact_tags(meta):
            self._add("tags", name, fact.id)
            if category:
                self._add("categories", category, fact.id)

        for kw in as_list(meta.get("keywords")):
            if isinstance(kw, str):
                self._add("keywords", kw.strip().lower(), fact.id)
        for word in _text_keywords(fact.title) + _text_keywords(fact.summary):
            self._add("keywords", word, fact.id)

        self._add("authors", (fact.author or "").lower(), fact.id)
        self._add("statuses", fact.status, fact.id)
        region = meta.get("region")
        if isinstance(region, str):
            self._add("regions", region.strip().lower(), fact.id)

        self.last_updated = utcnow()

    def remove_fact(self, fact_id: str) -> None:
        postings = self._postings.pop(fact_id, None)
        if not postings:
            return
        for index, key in postings:
            ids = self._indexes[index].get(key)
            if ids is None:
                continue
            ids.discard(fact_id)
            if not ids:
                del self._indexes[index][key]
        self.last_updated = utcnow()

    def lookup(self, index: str, key: str) -> List[str]:
        ids = self._indexes[index].get(key if index in ("statuses", "categories") else key.lower())
        return sorted(ids) if ids else []

    def _union(self, index: str, keys: Iterable[str]) -> Set[str]:
        out: Set[str] = set()
        for key in keys:
            out.update(self.lookup(index, key))
        return out

    def search(
        self,
        *,
        tags: Sequence[str] = (),
        keywords: Sequence[str] = (),
        categories: Sequence[str] = (),
        author: Optional[str] = None,
        region: Optional[str] = None,
        status: Sequence[str] = (),
    ) -> Set[str]:
        """
        OR within one criterion, AND across criteria.

        A criterion that is given but matches nothing makes the whole search
        empty; no criteria at all also returns an empty set.
        """
        groups: List[Set[str]] = []
        if tags:
            groups.append(self._union("tags", tags))
        if keywords:
            groups.append(self._union("keywords", keywords))
        if categories:
            groups.append(self._union("categories", categories))
        if author:
            groups.append(self._union("authors", [author]))
        if region:
            groups.append(self._union("regions", [region]))
        if status:
            groups.append(self._union("statuses", status))

        if not groups:
            return set()
        result = groups[0]
        for g in groups[1:]:
            result = result & g
        return result

    def _counts(self, index: str) -> List[Dict[str, Any]]:
        items = [{"name": k, "count": len(v)} for k, v in self._indexes[index].items()]
        items.sort(key=lambda x: (-x["count"], x["name"]))
        return items

    def tag_stats(self) -> List[Dict[str, Any]]:
        return self._counts("tags")

    def category_stats(self) -> List[Dict[str, Any]]:
        return self._counts("categories")

    def stats(self) -> Dict[str, Any]:
        return {
            "totalFacts": len(self._postings),
            "lastUpdated": self.last_updated.isoformat(),
            "indexes": {name: len(self._indexes[name]) for name in INDEX_NAMES},
        }

    def clear(self) -> None:
        for name in INDEX_NAMES:
            self._indexes[name].clear()
        self._postings.clear()
        self.last_updated = utcnow()
