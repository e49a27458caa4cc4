from dataclasses import dataclass, field
from typing import Callable, List

from redis.exceptions import RedisError

from reelstream.core.errors import PathSafetyError, ReelStreamException
from reelstream.core.logging_config import get_logger
from reelstream.models.upload_session import UploadSession, UploadStatus
from reelstream.services.filenames import safe_join, sanitize_session_id
from reelstream.services.log_publisher import publish_log
from reelstream.services.session_store import SessionStore, now_ms
from reelstream.services.storage_manager import CleanupResult, clear_dir

logger = get_logger(__name__)

EXPIRED_ERROR_TYPE = "SessionExpired"


@dataclass
class ReclaimReport:
    scanned: int = 0
    reclaimed: List[str] = field(default_factory=list)
    skipped_completed: int = 0
    skipped_failed: int = 0
    skipped_fresh: int = 0
    missing: int = 0
    errors: List[str] = field(default_factory=list)
    cleanup_failures: List[CleanupResult] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "scanned": self.scanned,
            "reclaimed": list(self.reclaimed),
            "skipped_completed": self.skipped_completed,
            "skipped_failed": self.skipped_failed,
            "skipped_fresh": self.skipped_fresh,
            "missing": self.missing,
            "errors": list(self.errors),
            "cleanup_failures": [r.path for r in self.cleanup_failures],
        }


class SessionReclaimer:
    """
    fails sessions that have been idle past the staleness threshold and deletes
    their chunk directories.

    idleness is measured from updated_at, so an upload that keeps sending
    chunks (or a transcode that keeps heartbeating) is never reclaimed. one bad
    session is logged and skipped, it never stops the sweep.
    """

    def __init__(
        self,
        store: SessionStore,
        temp_root: str,
        stale_threshold_seconds: int = 60 * 60 * 12,
        retention_ttl_seconds: int = 60 * 60 * 24 * 7,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.temp_root = temp_root
        self.stale_threshold_ms = stale_threshold_seconds * 1000
        self.retention_ttl_seconds = retention_ttl_seconds
        self.clock = clock

    def is_stale(self, session: UploadSession, now: int) -> bool:
        if session.status == UploadStatus.COMPLETED:
            return False
        return now - session.updated_at > self.stale_threshold_ms

    def sweep(self) -> ReclaimReport:
        report = ReclaimReport()
        try:
            session_ids = self.store.session_ids()
        except RedisError as e:
            logger.error(f"reclaim sweep could not list sessions: {e}")
            report.errors.append(f"list: {e}")
            return report

        for session_id in session_ids:
            report.scanned += 1
            try:
                self._reclaim_one(session_id, report)
            except (ReelStreamException, RedisError, OSError, ValueError) as e:
                logger.error(f"reclaim of session {session_id} failed: {e}")
                report.errors.append(f"{session_id}: {e}")

        if report.reclaimed:
            logger.warning(f"reclaimed {len(report.reclaimed)} stale upload sessions")
            publish_log('reclaimer', 'WARNING', f'reclaimed {len(report.reclaimed)} stale upload sessions', {
                'session_ids': report.reclaimed,
            })
        else:
            logger.info(f"reclaim sweep scanned {report.scanned} sessions, nothing stale")
        return report

    def _reclaim_one(self, session_id: str, report: ReclaimReport):
        with self.store.lock(session_id):
            session = self.store.load(session_id)
            if session is None:
                # evicted between listing and loading
                report.missing += 1
                return
            if session.status == UploadStatus.COMPLETED:
                report.skipped_completed += 1
                return
            now = self.clock()
            if not self.is_stale(session, now):
                report.skipped_fresh += 1
                return

            if session.status == UploadStatus.FAILED:
                # already terminal: drop leftover chunks but keep the record's
                # ttl running out instead of renewing it
                self._clean_chunks(session_id, report)
                report.skipped_failed += 1
                return

            logger.warning(f"cleaning up stale upload session {session_id}")
            self._clean_chunks(session_id, report)
            session.error = f"no activity for more than {self.stale_threshold_ms // 1000}s while {session.status.value}"
            session.error_type = EXPIRED_ERROR_TYPE
            session.status = UploadStatus.FAILED
            session.updated_at = now
            self.store.save(session, self.retention_ttl_seconds)
            report.reclaimed.append(session_id)

    def _clean_chunks(self, session_id: str, report: ReclaimReport):
        try:
            chunk_dir = safe_join(self.temp_root, sanitize_session_id(session_id))
        except PathSafetyError as e:
            logger.error(f"refusing to clean unsafe session id {session_id!r}: {e}")
            return
        for result in clear_dir(chunk_dir):
            if not result.ok:
                report.cleanup_failures.append(result)
