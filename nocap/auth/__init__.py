from nocap.auth.keys import APIKeyManager
from nocap.auth.schemas import APIKey, APIKeyUsage, RateLimitStatus

__all__ = ["APIKey", "APIKeyManager", "APIKeyUsage", "RateLimitStatus"]
