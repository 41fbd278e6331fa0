#!/usr/bin/env python3.11
"""tachi - a score import & aggregation server."""
from __future__ import annotations

import os

import uvicorn

import tachi.settings
from tachi.logging import configure_logging


def main() -> int:
    configure_logging()

    uvicorn.run(
        "tachi.api.init_api:asgi_app",
        host=os.environ.get("APP_HOST", "127.0.0.1"),
        port=int(os.environ.get("APP_PORT", "8080")),
        reload=tachi.settings.DEVELOPER_MODE,
        log_level="warning",
        server_header=False,
        date_header=False,
    )

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
