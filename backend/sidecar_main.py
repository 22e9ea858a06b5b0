"""
Allocation table backend – server entry point.

Used by the ``alloctable-server`` console script and by ``python
sidecar_main.py``. During development ``uvicorn app.main:app --reload`` works
as well.

Environment variables (see app/config.py):
  ALLOCTABLE_HOST        – bind address (default 127.0.0.1)
  ALLOCTABLE_PORT        – port; 0 picks a free port and prints "PORT:{port}"
  ALLOCTABLE_LOG_LEVEL   – root logging level (default INFO)
  ALLOCTABLE_CORS_ORIGINS, ALLOCTABLE_ZERO_SUM_POLICY
"""

from __future__ import annotations

import logging
import socket

from app.config import LOG_LEVEL, SERVER_HOST, SERVER_PORT
from app.main import app as _fastapi_app


def _find_free_port(host: str) -> int:
    """Bind to port 0, let the OS assign a free port, return it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


def main() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = SERVER_PORT or _find_free_port(SERVER_HOST)
    if not SERVER_PORT:
        # Let a parent process know where to connect before uvicorn blocks.
        print(f"PORT:{port}", flush=True)

    import uvicorn

    uvicorn.run(
        _fastapi_app,
        host=SERVER_HOST,
        port=port,
        workers=1,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
