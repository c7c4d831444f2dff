"""
API key issuance, authorization and hourly rate limiting.

Rate limits use a fixed one-hour bucket aligned to the epoch hour: a key may
make `requests_per_hour` authorized calls between HH:00:00 and HH:59:59 UTC,
after which the window count starts again from zero. `usage.request_count` is
the lifetime total and is never reset.
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import bittensor as bt

from nocap.auth.schemas import (
    TIER_REQUESTS_PER_HOUR,
    VALID_PERMISSIONS,
    APIKey,
    APIKeyUsage,
    RateLimit,
    RateLimitStatus,
)
from nocap.errors import AuthenticationError, RateLimitExceeded, ValidationError


WINDOW_SECONDS = 3600
KEY_PREFIX = "nocap_"
PREVIEW_CHARS = 12

DEMO_KEYS = (
    {"name": "Demo Read-Only Key", "permissions": ["read"], "tier": "free"},
    {"name": "Demo Full Access Key", "permissions": ["read", "write", "analytics"], "tier": "premium"},
)


def _window_start(now: float) -> int:
    return int(now // WINDOW_SECONDS) * WINDOW_SECONDS


def _strip_bearer(raw: Optional[str]) -> str:
    value = (raw or "").strip()
    if value.lower().startswith("bearer "):
        value = value[7:].strip()
    return value


class APIKeyManager:
    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._keys: Dict[str, APIKey] = {}
        self._by_secret: Dict[str, str] = {}
        # key id -> (window start, calls in window)
        self._windows: Dict[str, Tuple[int, int]] = {}
        self._demo_seeded = False

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _mint_secret(self) -> str:
        secret = KEY_PREFIX + secrets.token_urlsafe(24)
        while secret in self._by_secret:
            secret = KEY_PREFIX + secrets.token_urlsafe(24)
        return secret

    def _mint_id(self) -> str:
        # Revoked keys stay in the registry, so ids are never handed out twice.
        key_id = secrets.token_hex(8)
        while key_id in self._keys:
            key_id = secrets.token_hex(8)
        return key_id

    def create_api_key(
        self,
        *,
        name: str,
        permissions: Iterable[str],
        tier: str = "free",
        user_id: Optional[str] = None,
    ) -> APIKey:
        clean_name = name.strip() if isinstance(name, str) else ""
        if not clean_name:
            raise ValidationError("API key name is required")
        if user_id is not None and not isinstance(user_id, str):
            raise ValidationError("userId must be a string")
        if permissions is None:
            permissions = []
        if not isinstance(permissions, (list, tuple, set, frozenset)):
            raise ValidationError("permissions must be a list of strings")

        perms = list(permissions)
        invalid = [p for p in perms if p not in VALID_PERMISSIONS]
        if invalid:
            raise ValidationError(
                f"Invalid permissions: {', '.join(map(str, invalid))}. Valid: {', '.join(VALID_PERMISSIONS)}"
            )
        if not perms:
            raise ValidationError("At least one permission is required")
        if tier not in TIER_REQUESTS_PER_HOUR:
            raise ValidationError(f"Invalid tier {tier!r}. Valid: {', '.join(TIER_REQUESTS_PER_HOUR)}")

        api_key = APIKey(
            id=self._mint_id(),
            key=self._mint_secret(),
            name=clean_name,
            user_id=user_id,
            permissions=[p for p in VALID_PERMISSIONS if p in perms],
            tier=tier,
            rate_limit=RateLimit(requests_per_hour=TIER_REQUESTS_PER_HOUR[tier]),
            usage=APIKeyUsage(created_at=self._now()),
            active=True,
        )
        self._keys[api_key.id] = api_key
        self._by_secret[api_key.key] = api_key.id
        bt.logging.info(f"Issued API key {api_key.id} ({tier}, {','.join(api_key.permissions)})")
        return api_key.model_copy(deep=True)

    def get_user_api_keys(self, user_id: str) -> List[APIKey]:
        return [k.model_copy(deep=True) for k in self._keys.values() if k.user_id == user_id]

    def list_api_keys(self) -> List[APIKey]:
        return [k.model_copy(deep=True) for k in self._keys.values()]

    @staticmethod
    def preview(secret: str) -> str:
        """What listing callers may show of a secret."""
        return secret[:PREVIEW_CHARS] + "..."

    def revoke_api_key(self, key_id: str) -> bool:
        """Deactivate a key for good. False if unknown or already revoked."""
        api_key = self._keys.get(key_id)
        if api_key is None or not api_key.active:
            return False
        api_key.active = False
        self._windows.pop(key_id, None)
        bt.logging.info(f"Revoked API key {key_id}")
        return True

    def get_api_key_usage(self, key_id: str) -> Optional[APIKeyUsage]:
        api_key = self._keys.get(key_id)
        if api_key is None:
            return None
        return api_key.usage.model_copy()

    def authorize(self, secret: Optional[str], permission: str) -> RateLimitStatus:
        """
        Check `secret` for `permission` and spend one unit of its hourly budget.

        Raises AuthenticationError (missing/unknown/revoked/under-privileged)
        or RateLimitExceeded; nothing is counted when either is raised.
        """
        value = _strip_bearer(secret)
        if not value:
            raise AuthenticationError(
                "API key required. Include in Authorization header, X-API-Key header, or api_key query parameter.",
                missing=True,
            )

        key_id = self._by_secret.get(value)
        api_key = self._keys.get(key_id) if key_id else None
        if api_key is None or not api_key.active:
            raise AuthenticationError("Invalid API key")
        if permission not in api_key.permissions:
            raise AuthenticationError(f"Insufficient permissions. Required: {permission}")

        now = self._clock()
        start = _window_start(now)
        limit = api_key.rate_limit.requests_per_hour
        window, used = self._windows.get(api_key.id, (start, 0))
        if window != start:
            window, used = start, 0
        reset_at = window + WINDOW_SECONDS

        if used >= limit:
            raise RateLimitExceeded("Rate limit exceeded. Please try again later.", limit=limit, reset_at=reset_at)

        used += 1
        self._windows[api_key.id] = (window, used)
        api_key.usage.request_count += 1
        api_key.usage.last_used_at = self._now()
        return RateLimitStatus(limit=limit, remaining=max(0, limit - used), reset_at=reset_at, window_s=WINDOW_SECONDS)

    def initialize_demo_api_keys(self) -> List[APIKey]:
        """Seed the demo keys once for this manager's lifetime; later calls are no-ops."""
        if self._demo_seeded:
            return []
        self._demo_seeded = True
        created = [self.create_api_key(**demo) for demo in DEMO_KEYS]
        bt.logging.info(f"Demo API keys initialized: {[k.id for k in created]}")
        return created

    def clear(self) -> None:
        self._keys.clear()
        self._by_secret.clear()
        self._windows.clear()
        self._demo_seeded = False
