"""Expiring key/value store for upload session records."""

import fnmatch
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from redis import Redis

from reelstream.core.logging_config import get_logger
from reelstream.models.upload_session import UploadSession

logger = get_logger(__name__)

KEY_PREFIX = "upload:video:"
KEY_PATTERN = KEY_PREFIX + "*"


def session_key(session_id: str) -> str:
    return f"{KEY_PREFIX}{session_id}"


def session_id_from_key(key) -> str:
    if isinstance(key, bytes):
        key = key.decode()
    return key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key.rsplit(":", 1)[-1]


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore(ABC):
    """
    raw key/value contract plus a per-session lock.

    every read-modify-write of a record must happen inside lock(session_id);
    a bare get-then-set loses concurrent chunk updates.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        pass

    @abstractmethod
    def keys(self, pattern: str) -> List[str]:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def lock(self, session_id: str):
        """context manager serializing updates to one session"""
        pass

    def load(self, session_id: str) -> Optional[UploadSession]:
        raw = self.get(session_key(session_id))
        if raw is None:
            return None
        try:
            return UploadSession.from_json(raw)
        except ValueError as e:
            logger.error(f"unreadable session record {session_id}: {e}")
            return None

    def save(self, session: UploadSession, ttl_seconds: Optional[int]) -> None:
        self.set(session_key(session.session_id), session.to_json(), ttl_seconds)

    def session_ids(self) -> List[str]:
        return [session_id_from_key(k) for k in self.keys(KEY_PATTERN)]


class RedisSessionStore(SessionStore):
    """session records as json strings with redis expiry; locks via redis-py Lock"""

    def __init__(self, client: Redis, lock_timeout: int = 30, blocking_timeout: int = 10):
        self.client = client
        self.lock_timeout = lock_timeout
        self.blocking_timeout = blocking_timeout

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisSessionStore":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            self.client.set(key, value, ex=ttl_seconds)
        else:
            self.client.set(key, value)

    def keys(self, pattern: str) -> List[str]:
        # scan rather than KEYS so a large keyspace never blocks the server
        return list(self.client.scan_iter(match=pattern))

    def delete(self, key: str) -> None:
        self.client.delete(key)

    def ttl(self, key: str) -> Optional[int]:
        remaining = self.client.ttl(key)
        return remaining if remaining is not None and remaining >= 0 else None

    def lock(self, session_id: str):
        return self.client.lock(
            f"lock:{session_key(session_id)}",
            timeout=self.lock_timeout,
            blocking_timeout=self.blocking_timeout,
        )


class InMemorySessionStore(SessionStore):
    """in-process store for tests and single-process development"""

    def __init__(self, clock: Callable[[], int] = now_ms):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[int]]] = {}
        self._data_lock = threading.Lock()
        self._session_locks: Dict[str, threading.Lock] = {}

    def _expired(self, expires_at: Optional[int]) -> bool:
        return expires_at is not None and self._clock() >= expires_at

    def get(self, key: str) -> Optional[str]:
        with self._data_lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if self._expired(expires_at):
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expires_at = self._clock() + ttl_seconds * 1000 if ttl_seconds else None
        with self._data_lock:
            self._data[key] = (value, expires_at)

    def keys(self, pattern: str) -> List[str]:
        with self._data_lock:
            return [
                k for k, (_, expires_at) in self._data.items()
                if fnmatch.fnmatchcase(k, pattern) and not self._expired(expires_at)
            ]

    def delete(self, key: str) -> None:
        with self._data_lock:
            self._data.pop(key, None)

    def ttl(self, key: str) -> Optional[int]:
        """remaining seconds, None when the key is missing or has no expiry"""
        with self._data_lock:
            entry = self._data.get(key)
        if entry is None or entry[1] is None:
            return None
        return max(0, (entry[1] - self._clock()) // 1000)

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        with self._data_lock:
            session_lock = self._session_locks.setdefault(session_id, threading.Lock())
        with session_lock:
            yield
