import os
from dataclasses import dataclass
from typing import Iterable, Optional

from reelstream.core.errors import TranscodeError
from reelstream.core.logging_config import get_logger
from reelstream.services.ffmpeg import run_hls_segmenter
from reelstream.services.hls_playlist import write_live_playlist

logger = get_logger(__name__)

TARGET_VOD = "vod"
TARGET_LIVE = "live"
ALL_TARGETS = (TARGET_VOD, TARGET_LIVE)


@dataclass
class TranscodeOutput:
    """playlist references for one asset; vod and live are independent and either may be None"""
    hls_vod_url: Optional[str] = None
    hls_live_url: Optional[str] = None
    vod_playlist_path: Optional[str] = None
    live_playlist_path: Optional[str] = None


class Transcoder:
    def __init__(
        self,
        ffmpeg_bin: str = "ffmpeg",
        segment_seconds: int = 10,
        timeout_seconds: Optional[float] = None,
        public_base_url: str = "",
        live_window_segments: int = 0,
    ):
        self.ffmpeg_bin = ffmpeg_bin
        self.segment_seconds = segment_seconds
        self.timeout_seconds = timeout_seconds
        self.public_base_url = public_base_url.rstrip("/")
        self.live_window_segments = live_window_segments

    def playlist_url(self, asset_key: str, playlist_path: str) -> str:
        return f"{self.public_base_url}/{asset_key}/{os.path.basename(playlist_path)}"

    def transcode(
        self,
        media_path: str,
        output_dir: str,
        targets: Iterable[str] = ALL_TARGETS,
        asset_key: Optional[str] = None,
    ) -> TranscodeOutput:
        """
        segment media_path into output_dir and expose the requested playlists.

        the segmenter always writes the vod playlist; the live playlist is derived
        from it only when requested. asset_key defaults to the output dir name.
        """
        targets = set(targets)
        unknown = targets - set(ALL_TARGETS)
        if unknown or not targets:
            raise ValueError(f"targets must be a non-empty subset of {ALL_TARGETS}, got {sorted(targets)}")
        if not os.path.isfile(media_path):
            raise TranscodeError(f"media file not found: {media_path}")

        asset_key = asset_key or os.path.basename(os.path.normpath(output_dir))
        vod_path = run_hls_segmenter(
            media_path,
            output_dir,
            ffmpeg_bin=self.ffmpeg_bin,
            segment_seconds=self.segment_seconds,
            timeout_seconds=self.timeout_seconds,
        )

        output = TranscodeOutput()
        if TARGET_VOD in targets:
            output.vod_playlist_path = vod_path
            output.hls_vod_url = self.playlist_url(asset_key, vod_path)
        if TARGET_LIVE in targets:
            try:
                live_path = write_live_playlist(vod_path, window_segments=self.live_window_segments)
            except (OSError, ValueError) as e:
                raise TranscodeError(f"could not derive live playlist from {vod_path}: {e}") from e
            output.live_playlist_path = live_path
            output.hls_live_url = self.playlist_url(asset_key, live_path)

        logger.info(
            f"transcoded {media_path} -> {output_dir} "
            f"(vod={output.hls_vod_url}, live={output.hls_live_url})"
        )
        return output
