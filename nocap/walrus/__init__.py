"""Blob backends: the Walrus network client and its disk-mirrored mock."""

from nocap.walrus.backend import BlobBackend, EnumerableBackend
from nocap.walrus.mock import MockBlobStore
from nocap.walrus.network import NetworkBlobStore
from nocap.walrus.schemas import BackendHealth, BlobMetadata

__all__ = [
    "BackendHealth",
    "BlobBackend",
    "BlobMetadata",
    "EnumerableBackend",
    "MockBlobStore",
    "NetworkBlobStore",
]
