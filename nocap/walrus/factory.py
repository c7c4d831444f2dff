from __future__ import annotations

from typing import Union

import bittensor as bt

from nocap.config import ServiceEnvConfig
from nocap.walrus.mock import MockBlobStore
from nocap.walrus.network import NetworkBlobStore


def create_backend(config: ServiceEnvConfig) -> Union[MockBlobStore, NetworkBlobStore]:
    """Pick the blob backend named by NOCAP_STORAGE_BACKEND."""
    if config.backend_mode == "network":
        net = config.network
        if net is None:
            raise SystemExit("[nocap] Internal error: network storage config missing.")
        bt.logging.info(f"Using Walrus network backend (publisher={net.publisher_url}, aggregator={net.aggregator_url})")
        return NetworkBlobStore(
            net.publisher_url,
            net.aggregator_url,
            epochs=net.epochs,
            timeout_s=net.timeout_s,
            max_blob_bytes=net.max_blob_bytes,
        )

    mock = config.mock
    if mock is None:
        raise SystemExit("[nocap] Internal error: mock storage config missing.")
    bt.logging.info(f"Using mock blob backend at {mock.storage_dir}")
    return MockBlobStore(
        mock.storage_dir,
        store_latency_s=mock.store_latency_s,
        retrieve_latency_s=mock.retrieve_latency_s,
        max_blob_bytes=mock.max_blob_bytes,
    )
