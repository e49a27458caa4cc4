import os
import shutil
from dataclasses import dataclass
from typing import List, Optional

from reelstream.core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CleanupResult:
    """outcome of one best-effort cleanup step"""
    path: str
    ok: bool
    error: Optional[str] = None


def remove_file(path: str) -> CleanupResult:
    """delete a file; an already-missing file counts as success"""
    try:
        os.remove(path)
        return CleanupResult(path=path, ok=True)
    except FileNotFoundError:
        return CleanupResult(path=path, ok=True)
    except OSError as e:
        logger.warning(f"error deleting {path}: {e}")
        return CleanupResult(path=path, ok=False, error=str(e))


def remove_dir(path: str) -> CleanupResult:
    """delete an empty directory; an already-missing directory counts as success"""
    try:
        os.rmdir(path)
        return CleanupResult(path=path, ok=True)
    except FileNotFoundError:
        return CleanupResult(path=path, ok=True)
    except OSError as e:
        logger.warning(f"error deleting directory {path}: {e}")
        return CleanupResult(path=path, ok=False, error=str(e))


def clear_dir(path: str) -> List[CleanupResult]:
    """
    delete every file directly inside path, then path itself.
    each step is attempted regardless of earlier failures.
    """
    if not os.path.isdir(path):
        return []
    try:
        names = os.listdir(path)
    except OSError as e:
        logger.warning(f"error listing {path}: {e}")
        return [CleanupResult(path=path, ok=False, error=str(e))]

    results = [remove_file(os.path.join(path, name)) for name in names]
    results.append(remove_dir(path))
    return results


def available_bytes(path: str) -> Optional[int]:
    """free bytes on the filesystem holding path, None when it cannot be read"""
    try:
        total, used, free = shutil.disk_usage(path)
        return free
    except OSError as e:
        logger.warning(f"error checking disk space for {path}: {e}")
        return None


class StorageManager:
    """reports disk usage of the upload tree"""

    def __init__(self, temp_root: str, output_root: str):
        self.temp_root = temp_root
        self.output_root = output_root

    def get_disk_usage(self) -> dict:
        """get current disk usage statistics"""
        temp_size = self._get_directory_size(self.temp_root)
        output_size = self._get_directory_size(self.output_root)

        return {
            "temp_chunks_gb": temp_size / (1024**3),
            "videos_gb": output_size / (1024**3),
            "total_gb": (temp_size + output_size) / (1024**3),
            "active_chunk_dirs": self._count_subdirs(self.temp_root),
        }

    def _get_directory_size(self, path: str) -> int:
        """recursively calculate directory size in bytes"""
        total = 0
        try:
            for entry in os.scandir(path):
                if entry.is_file():
                    total += entry.stat().st_size
                elif entry.is_dir():
                    total += self._get_directory_size(entry.path)
        except FileNotFoundError:
            return 0
        except OSError as e:
            logger.warning(f"error calculating size for {path}: {e}")
        return total

    @staticmethod
    def _count_subdirs(path: str) -> int:
        try:
            return sum(1 for entry in os.scandir(path) if entry.is_dir())
        except OSError:
            return 0
