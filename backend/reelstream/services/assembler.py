import os
import shutil
from typing import List

from reelstream.core.errors import AssemblyError
from reelstream.core.logging_config import get_logger
from reelstream.services.filenames import chunk_filename, safe_join, sanitize_session_id, sorted_chunk_ordinals
from reelstream.services.storage_manager import clear_dir

logger = get_logger(__name__)

COPY_BUFFER_SIZE = 4 * 1024 * 1024


class Assembler:
    """concatenates a session's chunks, in ordinal order, into one media file"""

    def __init__(self, temp_root: str):
        self.temp_root = temp_root

    def session_dir(self, session_id: str) -> str:
        return safe_join(self.temp_root, sanitize_session_id(session_id))

    def assemble(self, session_id: str, expected_chunks: int, output_path: str) -> str:
        """
        merge chunks 0..expected_chunks-1 into output_path and remove them.

        chunks are appended one at a time onto a single open file so memory use
        does not grow with media size. if anything fails the partial output and
        the remaining chunks are left on disk for inspection.
        """
        chunk_dir = self.session_dir(session_id)
        try:
            names = os.listdir(chunk_dir)
        except FileNotFoundError:
            raise AssemblyError(f"chunk directory missing for {session_id}")
        except OSError as e:
            raise AssemblyError(f"cannot list chunks for {session_id}: {e}") from e

        ordinals = sorted_chunk_ordinals(names)
        self._check_contiguous(session_id, ordinals, expected_chunks)

        os.makedirs(os.path.dirname(output_path), exist_ok=True)
        try:
            with open(output_path, "wb") as output:
                for ordinal in ordinals:
                    chunk_path = os.path.join(chunk_dir, chunk_filename(ordinal))
                    with open(chunk_path, "rb") as chunk:
                        shutil.copyfileobj(chunk, output, COPY_BUFFER_SIZE)
        except OSError as e:
            raise AssemblyError(f"failed while appending chunks for {session_id}: {e}") from e

        logger.info(f"assembled {len(ordinals)} chunks for {session_id} into {output_path}")

        for result in clear_dir(chunk_dir):
            if not result.ok:
                logger.warning(f"leftover after assembly of {session_id}: {result.path} ({result.error})")

        return output_path

    @staticmethod
    def _check_contiguous(session_id: str, ordinals: List[int], expected_chunks: int):
        if ordinals == list(range(expected_chunks)):
            return
        present = set(ordinals)
        missing = [i for i in range(expected_chunks) if i not in present]
        extra = [i for i in ordinals if i >= expected_chunks]
        raise AssemblyError(
            f"non-contiguous chunk set for {session_id}: "
            f"expected {expected_chunks}, missing {missing[:20]}, unexpected {extra[:20]}"
        )
