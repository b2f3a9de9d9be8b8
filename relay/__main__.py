"""Run the relay with uvicorn: ``python -m relay``."""

import uvicorn

from relay.core.config import settings


def main() -> None:
    uvicorn.run(
        "relay.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.app.debug,
        # Application logging owns the root handler; uvicorn loggers propagate to it
        log_config=None,
        server_header=False,
    )


if __name__ == "__main__":
    main()
