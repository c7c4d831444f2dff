from __future__ import annotations

import traceback
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import bittensor as bt
from fastapi import Body, Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from nocap import __version__
from nocap.auth.keys import APIKeyManager
from nocap.auth.schemas import TIER_REQUESTS_PER_HOUR, VALID_PERMISSIONS, APIKey, RateLimitStatus
from nocap.config import load_service_env
from nocap.errors import NoCapError, NotFound, RateLimitExceeded
from nocap.models import StoredCommentRecord, StoredFactRecord
from nocap.service import FactService


def _csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]


def _api_key_from_request(request: Request) -> Optional[str]:
    # Authorization: Bearer <key>, then X-API-Key, then ?api_key=
    return (
        request.headers.get("authorization")
        or request.headers.get("x-api-key")
        or request.query_params.get("api_key")
    )


def _fact_payload(record: StoredFactRecord) -> Dict[str, Any]:
    return {"fact": record.fact.to_wire(), "walrus": record.blob_metadata.to_wire()}


def _comment_payload(record: StoredCommentRecord) -> Dict[str, Any]:
    return {"comment": record.comment.to_wire(), "walrus": record.blob_metadata.to_wire()}


def _key_listing(api_key: APIKey) -> Dict[str, Any]:
    wire = api_key.to_wire()
    secret = wire.pop("key")
    wire["keyPreview"] = APIKeyManager.preview(secret)
    return wire


def create_app(
    service: FactService,
    *,
    cors_origins: Optional[List[str]] = None,
    rebuild_on_start: bool = False,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if rebuild_on_start:
            await service.rebuild_from_backend()
        yield

    app = FastAPI(title="No-Cap Fact API", version=__version__, lifespan=lifespan)
    app.state.service = service
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NoCapError)
    async def _nocap_error(request: Request, exc: NoCapError) -> JSONResponse:
        headers: Dict[str, str] = {}
        if isinstance(exc, RateLimitExceeded):
            headers["X-RateLimit-Limit"] = str(exc.limit)
            headers["X-RateLimit-Remaining"] = "0"
            if exc.reset_at is not None:
                headers["X-RateLimit-Reset"] = str(exc.reset_at)
        if exc.status_code >= 500:
            tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            bt.logging.error(f"{type(exc).__name__} while handling {request.method} {request.url.path}:\n{tb}")
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            {"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
            status_code=400,
        )

    def require(permission: str):
        def _authorize(request: Request, response: Response) -> RateLimitStatus:
            status = service.keys.authorize(_api_key_from_request(request), permission)
            for name, value in status.headers().items():
                response.headers[name] = value
            return status

        return _authorize

    @app.get("/api/health")
    async def health():
        report = await service.health()
        return JSONResponse(report.to_wire(), status_code=report.http_status)

    @app.get("/api/index/stats")
    async def index_stats():
        stats = await service.index_stats()
        return {"stats": stats.to_wire(), "timestamp": stats.last_synced_at.isoformat() if stats.last_synced_at else None}

    @app.get("/api/facts")
    def list_facts(limit: int = Query(default=10, ge=1, le=500), offset: int = Query(default=0, ge=0)):
        records, total = service.list_facts(limit, offset)
        return {"facts": [r.fact.to_wire() for r in records], "totalCount": total, "limit": limit, "offset": offset}

    @app.post("/api/facts", status_code=201)
    async def create_fact(payload: Dict[str, Any] = Body(...)):
        return _fact_payload(await service.create_fact(payload))

    @app.post("/api/facts/bulk")
    def facts_bulk(payload: Dict[str, Any] = Body(...), _rate: RateLimitStatus = Depends(require("read"))):
        return service.get_facts_bulk(
            payload.get("factIds") or [],
            include_content=bool(payload.get("includeContent")),
            include_sources=bool(payload.get("includeSources")),
        )

    @app.get("/api/facts/{fact_id}")
    def get_fact(fact_id: str):
        return _fact_payload(service.get_fact(fact_id))

    @app.put("/api/facts/{fact_id}")
    async def update_fact(fact_id: str, updates: Dict[str, Any] = Body(...)):
        return _fact_payload(await service.update_fact(fact_id, updates))

    @app.get("/api/search")
    def search(
        keywords: Optional[str] = None,
        tags: Optional[str] = None,
        categories: Optional[str] = None,
        author: Optional[str] = None,
        region: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = Query(default=10, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
        _rate: RateLimitStatus = Depends(require("read")),
    ):
        query = {
            "keywords": _csv(keywords),
            "tags": _csv(tags),
            "categories": _csv(categories),
            "author": author,
            "region": region,
            "status": _csv(status),
            "limit": limit,
            "offset": offset,
        }
        records, total = service.search_facts(**query)
        return {"facts": [r.fact.to_wire() for r in records], "totalCount": total, "query": query}

    @app.get("/api/tags")
    def tags(
        category: Optional[str] = None,
        limit: int = Query(default=50, ge=1, le=500),
        sort_by: str = Query(default="count", alias="sortBy"),
    ):
        return service.tag_analytics(category=category, limit=limit, sort_by=sort_by)

    @app.get("/api/analytics")
    def analytics(
        timeframe: str = "30d",
        category: Optional[str] = None,
        _rate: RateLimitStatus = Depends(require("analytics")),
    ):
        return service.analytics(timeframe, category)

    @app.post("/api/analytics")
    def analytics_trends(payload: Dict[str, Any] = Body(...), _rate: RateLimitStatus = Depends(require("analytics"))):
        return service.trends(
            str(payload.get("timeframe") or "30d"),
            str(payload.get("granularity") or "daily"),
            payload.get("tags") or [],
        )

    @app.get("/api/comments")
    def list_comments(fact_id: Optional[str] = Query(default=None, alias="factId")):
        return {"comments": [c.to_wire() for c in service.list_comments(fact_id)]}

    @app.post("/api/comments", status_code=201)
    async def create_comment(payload: Dict[str, Any] = Body(...)):
        return _comment_payload(await service.create_comment(payload))

    @app.get("/api/keys")
    def list_keys(user_id: Optional[str] = Query(default=None, alias="userId")):
        if user_id:
            return {"keys": [_key_listing(k) for k in service.keys.get_user_api_keys(user_id)]}
        return {
            "message": "API Key Management",
            "tiers": {tier: {"requestsPerHour": rph} for tier, rph in TIER_REQUESTS_PER_HOUR.items()},
            "permissions": list(VALID_PERMISSIONS),
        }

    @app.post("/api/keys", status_code=201)
    def create_key(payload: Dict[str, Any] = Body(...)):
        api_key = service.keys.create_api_key(
            name=str(payload.get("name") or ""),
            permissions=payload.get("permissions") or ["read"],
            tier=str(payload.get("tier") or "free"),
            user_id=payload.get("userId"),
        )
        return {
            "message": "API key created successfully",
            "apiKey": api_key.to_wire(),
            "warning": "Store this API key securely. It will not be shown again.",
        }

    @app.delete("/api/keys/{key_id}")
    def revoke_key(key_id: str):
        if not service.keys.revoke_api_key(key_id):
            raise NotFound(f"API key not found or already revoked: {key_id}")
        return {"message": "API key revoked successfully", "keyId": key_id}

    return app


def create_app_from_env() -> FastAPI:
    config = load_service_env()
    return create_app(
        FactService.from_env(config),
        cors_origins=config.cors_origins,
        rebuild_on_start=config.rebuild_on_start,
    )


app = create_app_from_env()
