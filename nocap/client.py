from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import requests


class NoCapClient:
    """Small requests-based client for the fact API."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        *,
        timeout_s: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = requests.get(f"{self.base_url}{path}", params=params, headers=self._headers(), timeout=self.timeout_s)
        r.raise_for_status()
        return r.json()

    def _send(self, method: str, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        r = requests.request(
            method,
            f"{self.base_url}{path}",
            json=body,
            headers=self._headers(),
            timeout=self.timeout_s,
        )
        r.raise_for_status()
        return r.json()

    def health(self) -> Dict[str, Any]:
        # 503 still carries a health payload.
        r = requests.get(f"{self.base_url}/api/health", headers=self._headers(), timeout=self.timeout_s)
        if r.status_code not in (200, 503):
            r.raise_for_status()
        return r.json()

    def index_stats(self) -> Dict[str, Any]:
        return self._get("/api/index/stats")["stats"]

    def get_fact(self, fact_id: str) -> Dict[str, Any]:
        return self._get(f"/api/facts/{fact_id}")

    def create_fact(self, fact: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", "/api/facts", fact)

    def update_fact(self, fact_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("PUT", f"/api/facts/{fact_id}", updates)

    def list_comments(self, fact_id: str) -> List[Dict[str, Any]]:
        data = self._get("/api/comments", {"factId": fact_id})
        comments = data.get("comments")
        return comments if isinstance(comments, list) else []

    def create_comment(self, comment: Dict[str, Any]) -> Dict[str, Any]:
        return self._send("POST", "/api/comments", comment)

    def search(
        self,
        *,
        keywords: Sequence[str] = (),
        tags: Sequence[str] = (),
        status: Sequence[str] = (),
        author: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"limit": limit, "offset": offset}
        if keywords:
            params["keywords"] = ",".join(keywords)
        if tags:
            params["tags"] = ",".join(tags)
        if status:
            params["status"] = ",".join(status)
        if author:
            params["author"] = author
        return self._get("/api/search", params)

    def analytics(self, timeframe: str = "30d", category: Optional[str] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {"timeframe": timeframe}
        if category:
            params["category"] = category
        return self._get("/api/analytics", params)
