import os
import shutil
from typing import BinaryIO, Callable, Union
from uuid import uuid4

from reelstream.core.errors import ChunkIOError, InvalidChunkError, SessionNotFound, SessionStateError
from reelstream.core.logging_config import get_logger
from reelstream.models.upload_session import UploadSession, UploadStatus
from reelstream.services.filenames import chunk_filename, safe_join, sanitize_session_id
from reelstream.services.session_store import SessionStore, now_ms
from reelstream.services.storage_manager import remove_dir, remove_file

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 1024 * 1024

ChunkData = Union[bytes, bytearray, memoryview, BinaryIO]


class ChunkWriter:
    """writes single chunks under <temp_root>/<session_id>/<ordinal>.chunk"""

    def __init__(
        self,
        store: SessionStore,
        temp_root: str,
        session_ttl_seconds: int,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.temp_root = temp_root
        self.session_ttl_seconds = session_ttl_seconds
        self.clock = clock

    def session_dir(self, session_id: str) -> str:
        return safe_join(self.temp_root, sanitize_session_id(session_id))

    def chunk_path(self, session_id: str, ordinal: int) -> str:
        return safe_join(self.session_dir(session_id), chunk_filename(ordinal))

    def write_chunk(self, session_id: str, ordinal: int, data: ChunkData) -> UploadSession:
        """
        persist one chunk and record it on the session.

        the bytes are streamed outside the session lock so parallel chunks of the
        same upload write concurrently; only the metadata update is serialized.
        a repeated ordinal overwrites the file and is not counted twice.
        """
        sanitize_session_id(session_id)

        session = self.store.load(session_id)
        if session is None:
            raise SessionNotFound(f"upload session {session_id} not found")
        session.ensure_accepts_chunks()
        self._check_ordinal(session, ordinal)

        path = self.chunk_path(session_id, ordinal)
        self._write_file(path, data)

        with self.store.lock(session_id):
            session = self.store.load(session_id)
            try:
                if session is None:
                    raise SessionNotFound(f"upload session {session_id} not found")
                # the reclaimer may have failed the session while the bytes streamed
                session.ensure_accepts_chunks()
            except (SessionNotFound, SessionStateError):
                self._discard(path)
                raise
            session.add_chunk(ordinal)
            if session.status == UploadStatus.PENDING:
                session.status = UploadStatus.UPLOADING
            session.updated_at = self.clock()
            self.store.save(session, self.session_ttl_seconds)

        logger.debug(
            f"chunk {ordinal} stored for {session_id} "
            f"({session.received_count}/{session.expected_chunks})"
        )
        return session

    @staticmethod
    def _check_ordinal(session: UploadSession, ordinal: int):
        if isinstance(ordinal, bool) or not isinstance(ordinal, int):
            raise InvalidChunkError(f"chunk ordinal must be an integer, got {ordinal!r}")
        if ordinal < 0 or ordinal >= session.expected_chunks:
            raise InvalidChunkError(
                f"chunk ordinal {ordinal} out of range 0..{session.expected_chunks - 1}"
            )

    @staticmethod
    def _discard(path: str):
        remove_file(path)
        chunk_dir = os.path.dirname(path)
        if os.path.isdir(chunk_dir) and not os.listdir(chunk_dir):
            remove_dir(chunk_dir)

    @staticmethod
    def _write_file(path: str, data: ChunkData):
        # write to a per-call temp file beside the target then rename, so a retried
        # ordinal replaces the old chunk atomically and concurrent writes never share a temp file
        part_path = f"{path}.{uuid4().hex}.part"
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(part_path, "wb") as f:
                if isinstance(data, (bytes, bytearray, memoryview)):
                    f.write(data)
                else:
                    shutil.copyfileobj(data, f, COPY_BUFFER_SIZE)
            os.replace(part_path, path)
        except OSError as e:
            if os.path.exists(part_path):
                try:
                    os.remove(part_path)
                except OSError as cleanup_error:
                    logger.warning(f"could not remove partial chunk {part_path}: {cleanup_error}")
            raise ChunkIOError(f"failed to write chunk {path}: {e}") from e
