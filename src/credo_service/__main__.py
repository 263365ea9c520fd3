"""Entry point for the credo service.

Usage::

    python -m credo_service
"""

from __future__ import annotations

import uvicorn

from credo_service.config import get_settings


def main() -> None:
    """Run the API server with host and port from config.yaml."""
    settings = get_settings()
    uvicorn.run(
        "credo_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


if __name__ == "__main__":
    main()
