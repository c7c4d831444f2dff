import pytest

from nocap.auth import APIKeyManager
from nocap.errors import AuthenticationError, RateLimitExceeded, ValidationError


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_create_key_derives_rate_limit_from_tier():
    mgr = APIKeyManager()
    free = mgr.create_api_key(name="a", permissions=["read"])
    premium = mgr.create_api_key(name="b", permissions=["read", "write"], tier="premium")
    enterprise = mgr.create_api_key(name="c", permissions=["analytics"], tier="enterprise")

    assert free.rate_limit.requests_per_hour == 1000
    assert premium.rate_limit.requests_per_hour == 10000
    assert enterprise.rate_limit.requests_per_hour == 100000
    assert free.usage.request_count == 0
    assert free.active
    assert free.key.startswith("nocap_")
    assert len({free.id, premium.id, enterprise.id}) == 3
    assert len({free.key, premium.key, enterprise.key}) == 3


@pytest.mark.parametrize(
    "kwargs",
    [
        {"name": "bad", "permissions": ["read", "delete"]},
        {"name": "  ", "permissions": ["read"]},
        {"name": "none", "permissions": []},
        {"name": "tier", "permissions": ["read"], "tier": "platinum"},
        {"name": "bare", "permissions": "read"},
    ],
)
def test_invalid_requests_create_no_key(kwargs):
    mgr = APIKeyManager()
    with pytest.raises(ValidationError):
        mgr.create_api_key(user_id="u1", **kwargs)
    assert mgr.list_api_keys() == []
    assert mgr.get_user_api_keys("u1") == []


def test_non_string_user_id_is_rejected():
    mgr = APIKeyManager()
    with pytest.raises(ValidationError, match="userId"):
        mgr.create_api_key(name="k", permissions=["read"], user_id=123)
    assert mgr.list_api_keys() == []


def test_revoke_is_terminal():
    mgr = APIKeyManager()
    key = mgr.create_api_key(name="k", permissions=["read"], user_id="u1")

    assert mgr.revoke_api_key(key.id) is True
    assert mgr.revoke_api_key(key.id) is False
    assert mgr.revoke_api_key("unknown") is False
    assert mgr.get_user_api_keys("u1")[0].active is False
    with pytest.raises(AuthenticationError):
        mgr.authorize(key.key, "read")


def test_listing_by_user_and_preview():
    mgr = APIKeyManager()
    mine = mgr.create_api_key(name="mine", permissions=["read"], user_id="u1")
    mgr.create_api_key(name="theirs", permissions=["read"], user_id="u2")

    keys = mgr.get_user_api_keys("u1")
    assert [k.id for k in keys] == [mine.id]
    preview = APIKeyManager.preview(mine.key)
    assert preview == mine.key[:12] + "..."
    assert mine.key not in preview


def test_authorize_checks_key_and_permission():
    mgr = APIKeyManager()
    key = mgr.create_api_key(name="reader", permissions=["read"])

    with pytest.raises(AuthenticationError) as missing:
        mgr.authorize(None, "read")
    assert missing.value.status_code == 401

    with pytest.raises(AuthenticationError) as unknown:
        mgr.authorize("nocap_nope", "read")
    assert unknown.value.status_code == 403

    with pytest.raises(AuthenticationError):
        mgr.authorize(key.key, "write")

    status = mgr.authorize(f"Bearer {key.key}", "read")
    assert status.limit == 1000
    assert status.remaining == 999

    usage = mgr.get_api_key_usage(key.id)
    assert usage.request_count == 1
    assert usage.last_used_at is not None
    assert mgr.get_api_key_usage("unknown") is None


def test_rate_limit_uses_hourly_window():
    clock = FakeClock(now=3600 * 100 + 10)
    mgr = APIKeyManager(clock=clock)
    key = mgr.create_api_key(name="free", permissions=["read"])

    for _ in range(1000):
        mgr.authorize(key.key, "read")
    with pytest.raises(RateLimitExceeded) as exc:
        mgr.authorize(key.key, "read")
    assert exc.value.status_code == 429
    assert exc.value.limit == 1000
    assert exc.value.reset_at == 3600 * 101
    # Rejected calls are not counted.
    assert mgr.get_api_key_usage(key.id).request_count == 1000

    clock.now = 3600 * 101
    status = mgr.authorize(key.key, "read")
    assert status.remaining == 999
    assert status.reset_at == 3600 * 102
    assert mgr.get_api_key_usage(key.id).request_count == 1001


def test_demo_keys_seeded_once():
    mgr = APIKeyManager()
    first = mgr.initialize_demo_api_keys()
    second = mgr.initialize_demo_api_keys()

    assert [k.name for k in first] == ["Demo Read-Only Key", "Demo Full Access Key"]
    assert second == []
    assert len(mgr.list_api_keys()) == 2
    full = first[1]
    assert full.tier == "premium"
    assert full.permissions == ["read", "write", "analytics"]
