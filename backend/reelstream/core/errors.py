import logging
from typing import Callable, Any, Tuple, Type
from functools import wraps
import time

logger = logging.getLogger(__name__)

def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
):
    """
    decorator to retry a function with exponential backoff

    usage:
        @retry_with_backoff(max_retries=5, initial_delay=2.0)
        def commit_playlists(video_id, ...):
            # ... code that might fail ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            delay = initial_delay
            last_exception = None

            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        logger.warning(
                            f"{func.__name__} failed (attempt {attempt + 1}/{max_retries}): {str(e)}. "
                            f"retrying in {delay}s..."
                        )
                        time.sleep(delay)
                        delay *= backoff_factor
                    else:
                        logger.error(
                            f"{func.__name__} failed after {max_retries} attempts: {str(e)}"
                        )

            # all retries exhausted
            raise last_exception

        return wrapper
    return decorator


def handle_worker_error(job_id: str, error: Exception):
    """
    centralized error handler for worker jobs
    logs error with traceback, keyed by job id
    """
    logger.error(f"job {job_id} failed: {error}", exc_info=error)


class ReelStreamException(Exception):
    """base exception for reelstream-specific errors"""
    pass


class PathSafetyError(ReelStreamException):
    """raised when a caller-supplied identifier would escape its base directory"""
    pass


class InvalidChunkError(ReelStreamException, ValueError):
    """raised when a chunk ordinal is out of range for its session"""
    pass


class ChunkIOError(ReelStreamException, OSError):
    """raised when a chunk cannot be written to disk; never retried internally"""
    pass


class AssemblyError(ReelStreamException):
    """raised when chunks are missing, non-contiguous or unreadable"""
    pass


class TranscodeError(ReelStreamException):
    """raised when the external segmenter fails; carries its diagnostic output"""

    def __init__(self, message: str, stderr: str = "", returncode: int = None):
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode

    def __str__(self):
        base = super().__str__()
        if self.stderr:
            return f"{base}: {self.stderr.strip()[-2000:]}"
        return base


class SessionNotFound(ReelStreamException):
    """raised when a session is unknown or already evicted from the store"""
    pass


class SessionStateError(ReelStreamException):
    """raised when a session is not in a state that accepts the operation"""
    pass


class SessionTerminalStateError(SessionStateError):
    """raised when a chunk arrives for a completed or failed session"""
    pass


class SessionBusyError(SessionStateError):
    """raised when a chunk arrives while the session is being assembled or transcoded"""
    pass


class CatalogError(ReelStreamException):
    """raised when the catalog entry for a finished upload cannot be updated"""
    pass


class InsufficientStorageError(ReelStreamException):
    """raised when the upload volume cannot hold a declared file plus its reserve"""
    pass
