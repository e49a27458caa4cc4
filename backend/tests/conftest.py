import os

# settings are read at import time; keep tests off the network and off postgres
os.environ.setdefault("PUBLISH_EVENTS", "0")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import subprocess
from unittest.mock import patch

import pytest
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool

from reelstream.core.config import settings
from reelstream.services.assembler import Assembler
from reelstream.services.catalog import CatalogStore
from reelstream.services.chunk_writer import ChunkWriter
from reelstream.services.orchestrator import UploadOrchestrator
from reelstream.services.reclaimer import SessionReclaimer
from reelstream.services.session_store import InMemorySessionStore
from reelstream.services.transcoder import Transcoder

HOUR_MS = 60 * 60 * 1000

VOD_PLAYLIST = """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-TARGETDURATION:10
#EXT-X-MEDIA-SEQUENCE:0
#EXT-X-PLAYLIST-TYPE:VOD
#EXTINF:10.000000,
segment00000.ts
#EXTINF:4.500000,
segment00001.ts
#EXT-X-ENDLIST
"""


class FakeClock:
    """millisecond clock that only moves when told to"""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class FakeSegmenter:
    """stands in for subprocess.run: writes a two-segment hls output like ffmpeg would"""

    def __init__(self, returncode: int = 0, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        self.calls = []
        self.inputs = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        input_path = cmd[cmd.index("-i") + 1]
        with open(input_path, "rb") as f:
            self.inputs.append(f.read())

        if self.returncode != 0:
            raise subprocess.CalledProcessError(self.returncode, cmd, output="", stderr=self.stderr)

        playlist_path = cmd[-1]
        output_dir = os.path.dirname(playlist_path)
        for name in ("segment00000.ts", "segment00001.ts"):
            with open(os.path.join(output_dir, name), "wb") as f:
                f.write(b"\x47" * 188)
        with open(playlist_path, "w") as f:
            f.write(VOD_PLAYLIST)
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")


@pytest.fixture(autouse=True)
def no_event_publishing(monkeypatch):
    monkeypatch.setattr(settings, "PUBLISH_EVENTS", False)


@pytest.fixture(name="clock")
def clock_fixture():
    return FakeClock()


@pytest.fixture(name="store")
def store_fixture(clock):
    return InMemorySessionStore(clock=clock)


@pytest.fixture(name="temp_root")
def temp_root_fixture(tmp_path):
    path = tmp_path / "tmp" / "videos"
    path.mkdir(parents=True)
    return str(path)


@pytest.fixture(name="output_root")
def output_root_fixture(tmp_path):
    path = tmp_path / "videos"
    path.mkdir(parents=True)
    return str(path)


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture(name="segmenter")
def segmenter_fixture():
    segmenter = FakeSegmenter()
    with patch("reelstream.services.ffmpeg.subprocess.run", side_effect=segmenter):
        yield segmenter


@pytest.fixture(name="chunk_writer")
def chunk_writer_fixture(store, temp_root, clock):
    return ChunkWriter(store, temp_root, session_ttl_seconds=86400, clock=clock)


@pytest.fixture(name="make_orchestrator")
def make_orchestrator_fixture(store, chunk_writer, temp_root, output_root, clock):
    def make(**overrides):
        kwargs = dict(
            store=store,
            chunk_writer=chunk_writer,
            assembler=Assembler(temp_root),
            transcoder=Transcoder(public_base_url="/media/hls"),
            output_root=output_root,
            clock=clock,
            session_ttl_seconds=86400,
            retention_ttl_seconds=604800,
            heartbeat_seconds=3600,
        )
        kwargs.update(overrides)
        return UploadOrchestrator(**kwargs)
    return make


@pytest.fixture(name="orchestrator")
def orchestrator_fixture(make_orchestrator):
    return make_orchestrator()


@pytest.fixture(name="catalog")
def catalog_fixture(engine):
    return CatalogStore(engine)


@pytest.fixture(name="reclaimer")
def reclaimer_fixture(store, temp_root, clock):
    return SessionReclaimer(
        store,
        temp_root,
        stale_threshold_seconds=12 * 60 * 60,
        retention_ttl_seconds=604800,
        clock=clock,
    )
