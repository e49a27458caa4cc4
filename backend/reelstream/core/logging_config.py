import logging
import os
import sys
from datetime import datetime

from reelstream.core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(log_dir: str = None, level: str = None) -> None:
    """configure structured logging to stdout, plus a dated file when log_dir is set"""
    log_dir = settings.LOG_DIR if log_dir is None else log_dir
    level = level or settings.LOG_LEVEL

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.FileHandler(
                os.path.join(log_dir, f'reelstream_{datetime.now().strftime("%Y%m%d")}.log'),
                mode='a'
            )
        )

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """get a configured logger instance"""
    return logging.getLogger(name)
