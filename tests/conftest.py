import os
import sys
import tempfile
from pathlib import Path

# Ensure repo root is on sys.path so `import nocap` works under all pytest import modes.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# `nocap.api.app` builds a module-level app from the environment on import;
# keep its mock blob directory out of the working tree and its latency at zero.
os.environ.setdefault("TESTING", "true")
os.environ.setdefault("NOCAP_STORAGE_BACKEND", "mock")
os.environ.setdefault("NOCAP_MOCK_STORAGE_DIR", tempfile.mkdtemp(prefix="nocap-test-blobs-"))

import pytest  # noqa: E402

from nocap.walrus.mock import MockBlobStore  # noqa: E402


@pytest.fixture
def blob_store(tmp_path):
    return MockBlobStore(tmp_path / "blobs", store_latency_s=0, retrieve_latency_s=0)
