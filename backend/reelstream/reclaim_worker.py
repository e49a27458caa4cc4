"""
Dedicated entry point for the session reclaim poller.
This runs in its own container and sweeps stale upload sessions every
RECLAIM_INTERVAL_SECONDS (hourly by default).
"""
import os
import sys

from reelstream.core.config import settings
from reelstream.core.logging_config import get_logger, setup_logging

logger = get_logger("reelstream.reclaim_worker")


def main() -> int:
    setup_logging()
    logger.info("=" * 60)
    logger.info("SESSION RECLAIM WORKER STARTING")
    logger.info(f"python version: {sys.version.split()[0]}")
    logger.info(f"working directory: {os.getcwd()}")
    logger.info(f"upload root: {settings.UPLOAD_ROOT}")
    logger.info(f"stale threshold: {settings.STALE_THRESHOLD_SECONDS}s")
    logger.info("=" * 60)

    try:
        from reelstream.worker import reclaim_poller
        reclaim_poller()
    except KeyboardInterrupt:
        logger.info("reclaim worker stopped by user")
        return 0
    except Exception as e:
        logger.exception(f"FATAL ERROR: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
