"""
On-disk mirror for the mock blob backend.

Layout::

    <root>/
        manifest.json         {"version": 1, "blobs": [<BlobMetadata>, ...]}
        mock-1718000000000-k3j2h1g0f   raw payload, one file per blob id

The manifest is the single source of truth: a blob file that is not listed is
ignored, and a listed id whose file is gone is skipped on load. Both blob
files and the manifest are written to a temp file first and renamed into
place, and the manifest only ever lists blobs whose file already exists.
"""

from __future__ import annotations

import json
import os
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional, Union

import bittensor as bt
from pydantic import ValidationError as PydanticValidationError

from nocap.walrus.schemas import BlobMetadata


MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1

_SAFE_BLOB_ID = re.compile(r"^[A-Za-z0-9_-]{1,200}$")


def is_safe_blob_id(blob_id: str) -> bool:
    return bool(_SAFE_BLOB_ID.match(blob_id or ""))


class BlobDirectory:
    def __init__(self, root: Union[str, Path]) -> None:
        self.root = Path(root)

    @property
    def manifest_path(self) -> Path:
        return self.root / MANIFEST_NAME

    def ensure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def blob_path(self, blob_id: str) -> Path:
        if not is_safe_blob_id(blob_id):
            raise ValueError(f"unsafe blob id for disk mirror: {blob_id!r}")
        return self.root / blob_id

    def _atomic_write(self, target: Path, data: bytes) -> None:
        self.ensure()
        fd, tmp = tempfile.mkstemp(dir=str(self.root), prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp, target)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def write_blob(self, blob_id: str, payload: bytes) -> None:
        self._atomic_write(self.blob_path(blob_id), payload)

    def read_blob(self, blob_id: str) -> Optional[bytes]:
        if not is_safe_blob_id(blob_id):
            return None
        path = self.root / blob_id
        if not path.is_file():
            return None
        return path.read_bytes()

    def load_manifest(self) -> List[BlobMetadata]:
        path = self.manifest_path
        if not path.exists():
            return []
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            bt.logging.warning(f"Ignoring unreadable blob manifest {path}: {exc}")
            return []

        items = raw.get("blobs") if isinstance(raw, dict) else None
        if not isinstance(items, list):
            bt.logging.warning(f"Ignoring malformed blob manifest {path}")
            return []

        out: List[BlobMetadata] = []
        seen: set[str] = set()
        for item in items:
            try:
                meta = BlobMetadata.model_validate(item)
            except PydanticValidationError:
                continue
            if meta.blob_id in seen or not is_safe_blob_id(meta.blob_id):
                continue
            seen.add(meta.blob_id)
            out.append(meta)
        return out

    def write_manifest(self, entries: List[BlobMetadata]) -> None:
        doc = {
            "version": MANIFEST_VERSION,
            "blobs": [m.to_wire() for m in entries],
        }
        data = json.dumps(doc, indent=2, sort_keys=True).encode("utf-8")
        self._atomic_write(self.manifest_path, data)

    def is_writable(self) -> bool:
        try:
            self.ensure()
        except OSError:
            return False
        return os.access(self.root, os.W_OK)

    def wipe(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
