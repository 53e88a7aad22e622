"""
main.py: server launcher and entry point.

Run this file to start the allocation service:

    python main.py

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Host and port come from SHOPFLOOR_HOST / SHOPFLOOR_PORT.
"""

from __future__ import annotations

import os

import uvicorn

from backend.utils.config import get_settings


HOST = os.getenv("SHOPFLOOR_HOST", "127.0.0.1")
PORT = int(os.getenv("SHOPFLOOR_PORT", "8000"))


def main() -> None:
    """Start the allocation API server."""
    settings = get_settings()
    print("=" * 60)
    print(f"  {settings.app_name} v{settings.app_version}")
    print("=" * 60)
    print(f"  Server  : http://{HOST}:{PORT}")
    print(f"  API docs: http://{HOST}:{PORT}/docs")
    print(f"  Snapshot: {settings.snapshot_path or 'none (empty pool)'}")
    print("=" * 60)
    print("  Press CTRL+C to stop\n")

    # Start uvicorn; blocks until CTRL+C
    uvicorn.run(
        "app:app",
        host=HOST,
        port=PORT,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
