"""Entry point for running the API server."""

import uvicorn

from convmem.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "convmem.api.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
