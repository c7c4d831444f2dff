"""No-Cap fact persistence: blob storage, record stores, indexes and API keys."""

__version__ = "0.1.0"
