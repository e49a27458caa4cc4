"""
Per-session upload state machine.

    pending -> uploading -> assembling -> transcoding -> completed
    any non-terminal state -> failed

the session store is the single source of truth. every transition is a
read-modify-write under the store's per-session lock.
"""

import math
import os
import threading
from contextlib import contextmanager
from typing import Callable, Iterable, Optional
from uuid import uuid4

from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError

from reelstream.core.errors import (
    AssemblyError,
    CatalogError,
    InsufficientStorageError,
    ReelStreamException,
    SessionNotFound,
    SessionStateError,
    TranscodeError,
)
from reelstream.core.logging_config import get_logger
from reelstream.models.upload_session import UploadSession, UploadStatus
from reelstream.services.assembler import Assembler
from reelstream.services.catalog import CatalogStore
from reelstream.services.chunk_writer import ChunkData, ChunkWriter
from reelstream.services.filenames import safe_join, sanitize_session_id
from reelstream.services.log_publisher import publish_log
from reelstream.services.session_store import SessionStore, now_ms
from reelstream.services.storage_manager import available_bytes, remove_file
from reelstream.services.transcoder import ALL_TARGETS, Transcoder

logger = get_logger(__name__)

ASSEMBLED_MEDIA_NAME = "original.mp4"
DEFAULT_RESERVE_BYTES = 100 * 1024 * 1024


def plan_upload(filesize: int, chunk_size: int, max_chunks: int) -> tuple:
    """
    (expected_chunks, chunk_size) for a declared file size.
    past max_chunks the chunk size grows so the plan lands near max_chunks / 2.
    """
    if filesize <= 0 or chunk_size <= 0:
        raise ValueError("filesize and chunk_size must be positive")
    total_chunks = math.ceil(filesize / chunk_size)
    if total_chunks > max_chunks:
        chunk_size = math.ceil(filesize / (max_chunks // 2))
        total_chunks = math.ceil(filesize / chunk_size)
    return total_chunks, chunk_size


class UploadOrchestrator:
    def __init__(
        self,
        store: SessionStore,
        chunk_writer: ChunkWriter,
        assembler: Assembler,
        transcoder: Transcoder,
        output_root: str,
        catalog: Optional[CatalogStore] = None,
        dispatcher: Optional[Callable[[str], object]] = None,
        clock: Callable[[], int] = now_ms,
        session_ttl_seconds: int = 60 * 60 * 24,
        retention_ttl_seconds: int = 60 * 60 * 24 * 7,
        heartbeat_seconds: float = 60,
        default_chunk_size: int = 10 * 1024 * 1024,
        max_chunks: int = 1000,
        targets: Iterable[str] = ALL_TARGETS,
        probe_duration: Optional[Callable[[str], Optional[int]]] = None,
        reserve_bytes: int = DEFAULT_RESERVE_BYTES,
    ):
        self.store = store
        self.chunk_writer = chunk_writer
        self.assembler = assembler
        self.transcoder = transcoder
        self.output_root = output_root
        self.catalog = catalog
        # dispatcher hands a claimed session to whatever runs process(); None runs it inline
        self.dispatcher = dispatcher
        self.clock = clock
        self.session_ttl_seconds = session_ttl_seconds
        self.retention_ttl_seconds = retention_ttl_seconds
        self.heartbeat_seconds = heartbeat_seconds
        self.default_chunk_size = default_chunk_size
        self.max_chunks = max_chunks
        self.targets = tuple(targets)
        self.probe_duration = probe_duration
        self.reserve_bytes = reserve_bytes

    # session lifecycle

    def create_session(
        self,
        expected_chunks: Optional[int] = None,
        filesize: Optional[int] = None,
        chunk_size: Optional[int] = None,
        video_id: Optional[str] = None,
        filename: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> UploadSession:
        """open a pending session from an explicit chunk count or a declared file size"""
        chunk_size = chunk_size or self.default_chunk_size
        if filesize:
            expected_chunks, chunk_size = plan_upload(filesize, chunk_size, self.max_chunks)
        if not expected_chunks or expected_chunks < 1:
            raise ValueError("either expected_chunks or filesize is required")

        free_bytes = self.check_disk_space(filesize) if filesize else None

        session_id = sanitize_session_id(session_id or uuid4().hex)
        now = self.clock()
        session = UploadSession(
            session_id=session_id,
            status=UploadStatus.PENDING,
            created_at=now,
            updated_at=now,
            video_id=str(video_id) if video_id else None,
            expected_chunks=expected_chunks,
            filename=filename,
            filesize=filesize,
            chunk_size=chunk_size,
            available_bytes=free_bytes,
        )

        with self.store.lock(session_id):
            if self.store.load(session_id) is not None:
                raise SessionStateError(f"upload session {session_id} already exists")
            self.store.save(session, self.session_ttl_seconds)

        logger.info(f"upload session {session_id} created: {expected_chunks} chunks, video={video_id}")
        publish_log('upload', 'INFO', f'upload session created: {session_id}', {
            'session_id': session_id,
            'expected_chunks': expected_chunks,
        })
        return session

    def check_disk_space(self, filesize: int) -> Optional[int]:
        """
        free bytes on the upload volume, raising when filesize plus the reserve
        does not fit. an unreadable volume is logged and allowed through.
        """
        free_bytes = available_bytes(self.output_root)
        if free_bytes is None:
            return None
        required = filesize + self.reserve_bytes
        if free_bytes < required:
            logger.error(f"insufficient disk space: available {free_bytes}, required {required}")
            raise InsufficientStorageError(
                "insufficient disk space on server to accept this upload"
            )
        return free_bytes

    def get_session(self, session_id: str) -> UploadSession:
        session = self.store.load(sanitize_session_id(session_id))
        if session is None:
            raise SessionNotFound(f"upload session {session_id} not found")
        return session

    def get_status(self, session_id: str) -> dict:
        """status view for polling clients; evicted sessions raise SessionNotFound"""
        session = self.get_session(session_id)
        view = {
            "session_id": session.session_id,
            "status": session.status.value,
            "received_chunks": session.received_chunks,
            "received_count": session.received_count,
            "expected_chunks": session.expected_chunks,
            "progress": session.progress_percent,
            "created_at": session.created_at,
            "updated_at": session.updated_at,
            "video_id": session.video_id,
            "hls_vod_url": session.hls_vod_url,
            "hls_live_url": session.hls_live_url,
        }
        if session.status == UploadStatus.FAILED:
            view["error"] = session.error
            view["error_type"] = session.error_type
            view["media_path"] = session.media_path
        return view

    # chunk intake

    def write_chunk(self, session_id: str, ordinal: int, data: ChunkData) -> UploadSession:
        """
        store one chunk; the write that completes the set claims the session for
        assembly and dispatches processing.
        """
        session = self.chunk_writer.write_chunk(session_id, ordinal, data)
        if not session.is_complete or session.status != UploadStatus.UPLOADING:
            return session

        claimed = False
        with self.store.lock(session_id):
            current = self.store.load(session_id)
            if current is not None and current.status == UploadStatus.UPLOADING and current.is_complete:
                current.status = UploadStatus.ASSEMBLING
                current.updated_at = self.clock()
                self.store.save(current, self.session_ttl_seconds)
                claimed = True
            session = current or session

        if claimed:
            logger.info(f"upload session {session_id} received all {session.expected_chunks} chunks")
            publish_log('upload', 'INFO', f'all chunks received: {session_id}', {'session_id': session_id})
            if self.dispatcher is None:
                return self.process(session_id)
            self.dispatcher(session_id)
        return session

    # processing

    def process(self, session_id: str) -> UploadSession:
        """
        assemble and transcode a claimed session.

        step failures mark the session failed and are not retried. the assembled
        media is removed only after a successful transcode.
        """
        session = self.get_session(session_id)
        if session.status != UploadStatus.ASSEMBLING:
            logger.warning(f"upload session {session_id} is {session.status.value}, nothing to process")
            return session

        output_dir = safe_join(self.output_root, session_id)
        media_path = os.path.join(output_dir, ASSEMBLED_MEDIA_NAME)

        try:
            self.assembler.assemble(session_id, session.expected_chunks, media_path)
        except (AssemblyError, OSError) as e:
            return self.fail(session_id, e, media_path=media_path if os.path.exists(media_path) else None)

        session = self._transition(
            session_id, UploadStatus.ASSEMBLING, UploadStatus.TRANSCODING, media_path=media_path
        )
        if session.status != UploadStatus.TRANSCODING:
            return session
        publish_log('worker', 'INFO', f'transcoding to hls: {session_id}', {'session_id': session_id})

        try:
            with self._heartbeat(session_id):
                output = self.transcoder.transcode(
                    media_path, output_dir, targets=self.targets, asset_key=session_id
                )
                duration_ms = self.probe_duration(media_path) if self.probe_duration else None
        except (TranscodeError, OSError, ValueError) as e:
            return self.fail(session_id, e, media_path=media_path)

        current = self.store.load(session_id)
        if current is None or current.status != UploadStatus.TRANSCODING:
            # reclaimed while the transcoder ran; the late result is not committed
            logger.warning(f"upload session {session_id} changed state during transcoding, output discarded")
            return current if current is not None else session

        if self.catalog is not None and current.video_id:
            try:
                self.catalog.commit_playlists(
                    current.video_id,
                    output.hls_vod_url,
                    output.hls_live_url,
                    duration_ms=duration_ms,
                    session_id=session_id,
                )
            except (CatalogError, SQLAlchemyError) as e:
                return self.fail(session_id, e, media_path=media_path)

        with self.store.lock(session_id):
            session = self.store.load(session_id)
            if session is None or session.status != UploadStatus.TRANSCODING:
                logger.warning(f"upload session {session_id} changed state before completion, not marked completed")
                return session if session is not None else current
            session.status = UploadStatus.COMPLETED
            session.hls_vod_url = output.hls_vod_url
            session.hls_live_url = output.hls_live_url
            session.duration_ms = duration_ms
            session.media_path = None
            session.updated_at = self.clock()
            # kept a week for auditing instead of expiring with the active ttl
            self.store.save(session, self.retention_ttl_seconds)

        cleanup = remove_file(media_path)
        if not cleanup.ok:
            logger.warning(f"assembled media left behind for {session_id}: {cleanup.error}")

        logger.info(f"upload session {session_id} completed: vod={output.hls_vod_url} live={output.hls_live_url}")
        publish_log('worker', 'SUCCESS', f'upload completed: {session_id}', {
            'session_id': session_id,
            'hls_vod_url': output.hls_vod_url,
            'hls_live_url': output.hls_live_url,
        })
        return session

    def fail(self, session_id: str, error: BaseException, media_path: Optional[str] = None) -> Optional[UploadSession]:
        """move a non-terminal session to failed, recording the error class"""
        with self.store.lock(session_id):
            session = self.store.load(session_id)
            if session is None:
                logger.error(f"upload session {session_id} failed after eviction: {error}")
                return None
            if session.status.is_terminal:
                return session
            session.status = UploadStatus.FAILED
            session.error = str(error)
            session.error_type = type(error).__name__
            if media_path:
                session.media_path = media_path
            session.updated_at = self.clock()
            self.store.save(session, self.retention_ttl_seconds)

        logger.error(f"upload session {session_id} failed ({session.error_type}): {error}")
        publish_log('worker', 'ERROR', f'upload failed: {session_id}', {
            'session_id': session_id,
            'error_type': session.error_type,
        })
        return session

    def _transition(self, session_id: str, expected: UploadStatus, target: UploadStatus, **fields) -> UploadSession:
        with self.store.lock(session_id):
            session = self.store.load(session_id)
            if session is None:
                raise SessionNotFound(f"upload session {session_id} not found")
            if session.status != expected:
                logger.warning(
                    f"upload session {session_id} is {session.status.value}, expected {expected.value}"
                )
                return session
            session.status = target
            for name, value in fields.items():
                setattr(session, name, value)
            session.updated_at = self.clock()
            self.store.save(session, self.session_ttl_seconds)
            return session

    def touch(self, session_id: str, status: UploadStatus) -> bool:
        """refresh updated_at while the session is still in status"""
        with self.store.lock(session_id):
            session = self.store.load(session_id)
            if session is None or session.status != status:
                return False
            session.updated_at = self.clock()
            self.store.save(session, self.session_ttl_seconds)
            return True

    @contextmanager
    def _heartbeat(self, session_id: str):
        """keep updated_at fresh during a long transcode so the reclaimer leaves it alone"""
        stop = threading.Event()

        def beat():
            while not stop.wait(self.heartbeat_seconds):
                try:
                    if not self.touch(session_id, UploadStatus.TRANSCODING):
                        return
                except (ReelStreamException, RedisError, OSError) as e:
                    logger.warning(f"heartbeat for {session_id} failed: {e}")

        thread = threading.Thread(target=beat, name=f"heartbeat-{session_id}", daemon=True)
        thread.start()
        try:
            yield
        finally:
            stop.set()
            thread.join(timeout=5)
