"""Run the service with uvicorn: ``python -m orderbook``.

Bind address, port, worker count and log level come from the environment
(``HOST``, ``PORT``, ``UVICORN_WORKERS``, ``LOG_LEVEL``).
"""

import uvicorn

from .config import Settings


def main() -> None:
    settings = Settings.from_env()
    uvicorn.run(
        "orderbook.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        workers=settings.workers,
        loop="auto",  # uvloop when uvicorn[standard] is installed
        http="h11",
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
