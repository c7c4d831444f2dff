from nocap.index.manager import IndexManager
from nocap.index.schemas import IndexStats, SourceCounts
from nocap.index.sources import BackendManifestSource, IndexSource, RecordStoreSource

__all__ = [
    "BackendManifestSource",
    "IndexManager",
    "IndexSource",
    "IndexStats",
    "RecordStoreSource",
    "SourceCounts",
]
