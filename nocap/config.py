from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from nocap.utils.env import _env_bool, _env_csv, _env_float, _env_int, _env_str


BackendMode = Literal["mock", "network"]
IndexSourceMode = Literal["records", "manifest"]

DEFAULT_PUBLISHER_URL = "https://publisher.walrus-testnet.walrus.space"
DEFAULT_AGGREGATOR_URL = "https://aggregator.walrus-testnet.walrus.space"
DEFAULT_MAX_BLOB_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class MockStorageConfig:
    storage_dir: str
    store_latency_s: float
    retrieve_latency_s: float
    max_blob_bytes: int


@dataclass(frozen=True)
class NetworkStorageConfig:
    publisher_url: str
    aggregator_url: str
    epochs: int
    timeout_s: float
    max_blob_bytes: int


@dataclass(frozen=True)
class ServiceEnvConfig:
    backend_mode: BackendMode
    mock: Optional[MockStorageConfig]
    network: Optional[NetworkStorageConfig]
    index_source: IndexSourceMode
    rebuild_on_start: bool
    seed_demo_keys: bool
    cors_origins: List[str]


def _die(msg: str) -> None:
    raise SystemExit(f"[nocap] {msg}")


def _http_url(name: str, default: str) -> str:
    url = (_env_str(name, default) or default).rstrip("/")
    if not url.startswith("http"):
        _die(f"{name} must be http(s). Got: {url!r}")
    return url


def load_service_env() -> ServiceEnvConfig:
    """
    Load service configuration from env/.env with strict validation.

    Only the section for the selected backend is populated; the other one is
    left as None so callers cannot accidentally read stale defaults.
    """
    backend_raw = (_env_str("NOCAP_STORAGE_BACKEND", "mock") or "mock").lower()
    if backend_raw not in ("mock", "network"):
        _die(f"Invalid NOCAP_STORAGE_BACKEND={backend_raw!r} (expected 'mock' or 'network').")
    backend_mode: BackendMode = "network" if backend_raw == "network" else "mock"

    max_blob_bytes = _env_int("NOCAP_MAX_BLOB_BYTES", DEFAULT_MAX_BLOB_BYTES)
    if max_blob_bytes <= 0:
        _die(f"NOCAP_MAX_BLOB_BYTES must be positive. Got: {max_blob_bytes}")

    mock_cfg: Optional[MockStorageConfig] = None
    network_cfg: Optional[NetworkStorageConfig] = None
    if backend_mode == "mock":
        storage_dir = _env_str("NOCAP_MOCK_STORAGE_DIR", ".nocap/blobs") or ".nocap/blobs"
        store_ms = max(0, _env_int("NOCAP_MOCK_STORE_LATENCY_MS", 100, test_default=0))
        retrieve_ms = max(0, _env_int("NOCAP_MOCK_RETRIEVE_LATENCY_MS", 50, test_default=0))
        mock_cfg = MockStorageConfig(
            storage_dir=storage_dir,
            store_latency_s=store_ms / 1000.0,
            retrieve_latency_s=retrieve_ms / 1000.0,
            max_blob_bytes=int(max_blob_bytes),
        )
    else:
        epochs = _env_int("NOCAP_WALRUS_EPOCHS", 5)
        if epochs < 1:
            _die(f"NOCAP_WALRUS_EPOCHS must be >= 1. Got: {epochs}")
        timeout_s = _env_float("NOCAP_WALRUS_TIMEOUT_S", 30.0)
        network_cfg = NetworkStorageConfig(
            publisher_url=_http_url("NOCAP_WALRUS_PUBLISHER_URL", DEFAULT_PUBLISHER_URL),
            aggregator_url=_http_url("NOCAP_WALRUS_AGGREGATOR_URL", DEFAULT_AGGREGATOR_URL),
            epochs=int(epochs),
            timeout_s=max(0.5, min(300.0, timeout_s)),
            max_blob_bytes=int(max_blob_bytes),
        )

    index_raw = (_env_str("NOCAP_INDEX_SOURCE", "records") or "records").lower()
    if index_raw not in ("records", "manifest"):
        _die(f"Invalid NOCAP_INDEX_SOURCE={index_raw!r} (expected 'records' or 'manifest').")
    if index_raw == "manifest" and backend_mode != "mock":
        _die("NOCAP_INDEX_SOURCE=manifest requires NOCAP_STORAGE_BACKEND=mock (the network backend cannot enumerate blobs).")
    index_source: IndexSourceMode = "manifest" if index_raw == "manifest" else "records"

    return ServiceEnvConfig(
        backend_mode=backend_mode,
        mock=mock_cfg,
        network=network_cfg,
        index_source=index_source,
        rebuild_on_start=_env_bool("NOCAP_REBUILD_ON_START", True),
        seed_demo_keys=_env_bool("NOCAP_SEED_DEMO_KEYS", True),
        cors_origins=_env_csv("NOCAP_CORS_ORIGINS", "*") or ["*"],
    )
