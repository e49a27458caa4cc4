import os
import re
from typing import Iterable, List, Optional

from reelstream.core.errors import PathSafetyError

CHUNK_SUFFIX = ".chunk"

_SESSION_ID_RE = re.compile(r'^[A-Za-z0-9_-]{1,128}$')
_CHUNK_NAME_RE = re.compile(r'^(\d+)\.chunk$')
_LEADING_TRAVERSAL_RE = re.compile(r'^(\.\.[/\\])+')


def sanitize_session_id(session_id: str) -> str:
    """
    validate a session id before it becomes a directory name.
    ids carry no separators or dots, so nothing can climb out of the temp root.
    """
    if not isinstance(session_id, str) or not _SESSION_ID_RE.fullmatch(session_id):
        raise PathSafetyError(f"invalid session id: {session_id!r}")
    return session_id


def safe_join(base_dir: str, name: str) -> str:
    """
    join a caller-supplied relative name onto base_dir.

    leading ../ runs are stripped (so ../../etc/passwd lands at base/etc/passwd),
    then the resolved result must still sit under base_dir.
    """
    if not name or "\x00" in name:
        raise PathSafetyError(f"invalid path component: {name!r}")

    cleaned = name.replace("\\", "/")
    cleaned = os.path.normpath(cleaned).replace("\\", "/")
    cleaned = _LEADING_TRAVERSAL_RE.sub("", cleaned + "/").rstrip("/")
    cleaned = cleaned.lstrip("/")
    if cleaned in ("", ".", ".."):
        raise PathSafetyError(f"path component resolves to base: {name!r}")

    base_real = os.path.realpath(base_dir)
    candidate = os.path.realpath(os.path.join(base_real, cleaned))
    if os.path.commonpath([base_real, candidate]) != base_real:
        raise PathSafetyError(f"path escapes {base_dir}: {name!r}")
    return candidate


def chunk_filename(ordinal: int) -> str:
    """on-disk name for a chunk, e.g. 7 -> 7.chunk"""
    if isinstance(ordinal, bool) or not isinstance(ordinal, int) or ordinal < 0:
        raise PathSafetyError(f"invalid chunk ordinal: {ordinal!r}")
    return f"{ordinal}{CHUNK_SUFFIX}"


def parse_chunk_ordinal(filename: str) -> Optional[int]:
    """ordinal embedded in a chunk filename, None for anything that is not a chunk"""
    match = _CHUNK_NAME_RE.fullmatch(filename)
    if not match:
        return None
    return int(match.group(1))


def sorted_chunk_ordinals(filenames: Iterable[str]) -> List[int]:
    """
    numeric order of the chunk ordinals among filenames.
    a lexical sort would put 10.chunk before 2.chunk.
    """
    ordinals = (parse_chunk_ordinal(f) for f in filenames)
    return sorted(o for o in ordinals if o is not None)
