"""
Server Entry Point.

Runs the API server (and, unless disabled, the embedded job worker) with
uvicorn: ``python -m ai_office.server`` or the ``ai-office-server`` script.
"""

import uvicorn

from ai_office.core.config import settings


def main() -> None:
    uvicorn.run(
        "ai_office.server.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
