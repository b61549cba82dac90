"""Server entrypoint for FastAPI application."""

import uvicorn

from yieldpool.config import settings


def main() -> None:
    uvicorn.run(
        "yieldpool.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug_mode,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
