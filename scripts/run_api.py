from __future__ import annotations

import sys
from pathlib import Path

# Allow running as a script without requiring `PYTHONPATH=.`.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import argparse

import bittensor as bt
import uvicorn

from nocap.utils.env import _env_int, _env_str


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the No-Cap fact API.")
    parser.add_argument("--host", default=_env_str("NOCAP_API_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=_env_int("NOCAP_API_PORT", 8000))
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development only).")
    args = parser.parse_args()

    bt.logging.info(f"Starting No-Cap API on {args.host}:{args.port}")
    uvicorn.run("nocap.api.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
