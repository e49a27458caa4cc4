"""Reading media playlists and writing the live-style (EVENT) variant."""

import math
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

LIVE_PLAYLIST_NAME = "live.m3u8"


@dataclass
class PlaylistSegment:
    duration: float
    uri: str


@dataclass
class MediaPlaylist:
    version: int = 3
    target_duration: int = 0
    media_sequence: int = 0
    playlist_type: Optional[str] = None
    end_list: bool = False
    segments: List[PlaylistSegment] = field(default_factory=list)

    @property
    def total_duration(self) -> float:
        return sum(s.duration for s in self.segments)


def parse_playlist(content: str) -> MediaPlaylist:
    playlist = MediaPlaylist()
    pending_duration = None

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line == "#EXTM3U":
            continue
        if line.startswith("#EXT-X-VERSION:"):
            playlist.version = int(line.split(":", 1)[1] or 3)
        elif line.startswith("#EXT-X-TARGETDURATION:"):
            playlist.target_duration = int(line.split(":", 1)[1] or 0)
        elif line.startswith("#EXT-X-MEDIA-SEQUENCE:"):
            playlist.media_sequence = int(line.split(":", 1)[1] or 0)
        elif line.startswith("#EXT-X-PLAYLIST-TYPE:"):
            playlist.playlist_type = line.split(":", 1)[1]
        elif line == "#EXT-X-ENDLIST":
            playlist.end_list = True
        elif line.startswith("#EXTINF:"):
            pending_duration = float(line[len("#EXTINF:"):].split(",", 1)[0])
        elif not line.startswith("#") and pending_duration is not None:
            playlist.segments.append(PlaylistSegment(duration=pending_duration, uri=line))
            pending_duration = None

    return playlist


def read_playlist(path: str) -> MediaPlaylist:
    with open(path, "r", encoding="utf-8") as f:
        return parse_playlist(f.read())


def render_live_playlist(
    playlist: MediaPlaylist,
    started_at: datetime,
    window_segments: int = 0,
) -> str:
    """
    EVENT playlist over the same segments: program date-time tags and no
    ENDLIST, so players treat it as a stream that may still grow.
    window_segments > 0 keeps only the newest segments. a trimmed window drops
    the EVENT type tag, since EVENT playlists may only be appended to.
    """
    segments = playlist.segments
    first_index = 0
    if window_segments and len(segments) > window_segments:
        first_index = len(segments) - window_segments

    target = playlist.target_duration or max((math.ceil(s.duration) for s in segments), default=1)
    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{max(playlist.version, 3)}",
        f"#EXT-X-TARGETDURATION:{target}",
        f"#EXT-X-MEDIA-SEQUENCE:{playlist.media_sequence + first_index}",
    ]
    if first_index == 0:
        lines.append("#EXT-X-PLAYLIST-TYPE:EVENT")

    offset = sum(s.duration for s in segments[:first_index])
    for segment in segments[first_index:]:
        stamp = started_at + timedelta(seconds=offset)
        lines.append(f"#EXT-X-PROGRAM-DATE-TIME:{stamp.isoformat(timespec='milliseconds')}")
        lines.append(f"#EXTINF:{segment.duration:.6f},")
        lines.append(segment.uri)
        offset += segment.duration

    return "\n".join(lines) + "\n"


def write_live_playlist(
    vod_playlist_path: str,
    started_at: Optional[datetime] = None,
    window_segments: int = 0,
) -> str:
    """derive live.m3u8 next to a finished vod playlist, returns its path"""
    playlist = read_playlist(vod_playlist_path)
    started_at = started_at or datetime.now(timezone.utc)
    live_path = os.path.join(os.path.dirname(vod_playlist_path), LIVE_PLAYLIST_NAME)
    tmp_path = live_path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(render_live_playlist(playlist, started_at, window_segments))
    os.replace(tmp_path, live_path)
    return live_path
