"""Run the Portfolio API with ``python -m portfolio_api``."""

import uvicorn

from portfolio_api.config.settings import settings
from portfolio_api.core.logging import get_logger

logger = get_logger(__name__)


def main() -> None:
    logger.info(f"Starting Portfolio API on {settings.server.host}:{settings.server.port}")
    uvicorn.run(
        "portfolio_api.api.app:app",
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
