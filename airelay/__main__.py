"""Run the relay with uvicorn: ``python -m airelay``."""

import uvicorn

from airelay.config.settings import settings


def main() -> None:
    uvicorn.run(
        "airelay.gateway:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
