from reelstream.core.config import settings
from reelstream.core.logging_config import get_logger
import json
from datetime import datetime, timezone
from typing import Literal, Optional

logger = get_logger(__name__)

# Lazy initialize Redis to avoid startup issues
_redis_client = None

def get_redis_client():
    global _redis_client
    if _redis_client is None:
        import redis
        _redis_client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
    return _redis_client

LogLevel = Literal['INFO', 'WARNING', 'ERROR', 'SUCCESS', 'DEBUG']
LogSource = Literal['upload', 'worker', 'reclaimer', 'system']

LOG_CHANNEL = 'system_logs'

def publish_log(
    source: LogSource,
    level: LogLevel,
    message: str,
    metadata: Optional[dict] = None
):
    """Publish a pipeline event to Redis for real-time streaming"""
    if not settings.PUBLISH_EVENTS:
        return

    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": source,
        "level": level,
        "message": message,
        "metadata": metadata or {}
    }

    try:
        redis_client = get_redis_client()
        redis_client.publish(LOG_CHANNEL, json.dumps(log_entry, default=str))
    except Exception as e:
        # publishing is a mirror of the log, never fail the caller over it
        logger.warning(f"failed to publish log event: {e}")
