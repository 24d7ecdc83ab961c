"""Application entry point."""

from __future__ import annotations

import asyncio
import os

from core import setup_logger
from core.app_initializer import ApplicationInitializer

# Setup logging
logger = setup_logger(
    name="",
    level=os.getenv("LOG_LEVEL", "INFO"),
    log_file=os.path.join(os.getenv("LOG_FOLDER", "logs"), "app.log"),
    colored=True
)


async def main() -> None:
    """Main application entry point."""
    app = ApplicationInitializer()
    await app.initialize()
    await app.run()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Application stopped by user")
    except Exception as e:
        logger.error(f"Application failed: {e}", exc_info=True)
        raise SystemExit(1)
