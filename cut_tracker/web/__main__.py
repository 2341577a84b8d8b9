"""Run the HTTP adapter with uvicorn: ``python -m cut_tracker.web``."""

from __future__ import annotations

import argparse

import uvicorn

from ..config import get_settings
from .app import create_app


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the cut tracker API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()
    settings = get_settings()
    uvicorn.run(create_app(settings), host=args.host, port=args.port)


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
