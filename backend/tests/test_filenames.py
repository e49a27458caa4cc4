import os

import pytest

from reelstream.core.errors import PathSafetyError
from reelstream.services.filenames import (
    chunk_filename,
    parse_chunk_ordinal,
    safe_join,
    sanitize_session_id,
    sorted_chunk_ordinals,
)


def test_ordinals_sort_numerically():
    """10.chunk must come after 2.chunk"""
    names = [chunk_filename(i) for i in range(11)]
    names.sort()  # lexical: 0, 1, 10, 2, ...
    assert names[2] == "10.chunk"
    assert sorted_chunk_ordinals(names) == list(range(11))


def test_non_chunk_files_ignored():
    names = ["2.chunk", "1.chunk.part", ".DS_Store", "0.chunk", "x.chunk"]
    assert sorted_chunk_ordinals(names) == [0, 2]


def test_parse_chunk_ordinal():
    assert parse_chunk_ordinal("7.chunk") == 7
    assert parse_chunk_ordinal("007.chunk") == 7
    assert parse_chunk_ordinal("-1.chunk") is None
    assert parse_chunk_ordinal("7.chunk.part") is None


def test_chunk_filename_rejects_bad_ordinals():
    with pytest.raises(PathSafetyError):
        chunk_filename(-1)
    with pytest.raises(PathSafetyError):
        chunk_filename(True)


@pytest.mark.parametrize("session_id", ["abc123", "a_b-C", "f" * 128])
def test_valid_session_ids(session_id):
    assert sanitize_session_id(session_id) == session_id


@pytest.mark.parametrize("session_id", ["", "../etc", "a/b", "a.b", "f" * 129, None, "id\x00", "abc\n"])
def test_invalid_session_ids(session_id):
    with pytest.raises(PathSafetyError):
        sanitize_session_id(session_id)


def test_safe_join_neutralizes_leading_traversal(tmp_path):
    """../../etc/passwd resolves inside the base instead of escaping it"""
    base = str(tmp_path)
    joined = safe_join(base, "../../etc/passwd")
    assert joined == os.path.join(os.path.realpath(base), "etc", "passwd")


def test_safe_join_strips_absolute_paths(tmp_path):
    base = str(tmp_path)
    assert safe_join(base, "/etc/passwd") == os.path.join(os.path.realpath(base), "etc", "passwd")


def test_safe_join_blocks_symlink_escape(tmp_path):
    base = tmp_path / "base"
    outside = tmp_path / "outside"
    base.mkdir()
    outside.mkdir()
    os.symlink(str(outside), str(base / "link"))

    with pytest.raises(PathSafetyError):
        safe_join(str(base), "link/file")


@pytest.mark.parametrize("name", ["", ".", "..", "../..", "a\x00b"])
def test_safe_join_rejects_empty_results(tmp_path, name):
    with pytest.raises(PathSafetyError):
        safe_join(str(tmp_path), name)
