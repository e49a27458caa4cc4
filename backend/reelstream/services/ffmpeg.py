import subprocess
import json
import os
from typing import Optional

from reelstream.core.errors import TranscodeError
from reelstream.core.logging_config import get_logger

logger = get_logger(__name__)

PLAYLIST_NAME = "index.m3u8"
SEGMENT_PATTERN = "segment%05d.ts"


def build_hls_command(
    input_path: str,
    output_dir: str,
    ffmpeg_bin: str = "ffmpeg",
    segment_seconds: int = 10,
) -> list:
    """
    ffmpeg invocation that stream-copies the input into an hls vod playlist.
    no re-encode: fast, but the source must already use web-playable codecs.
    """
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-loglevel", "error",
        "-y",
        "-i", input_path,
        "-codec", "copy",
        "-start_number", "0",
        "-hls_time", str(segment_seconds),
        "-hls_list_size", "0",
        "-hls_playlist_type", "vod",
        "-hls_segment_filename", os.path.join(output_dir, SEGMENT_PATTERN),
        "-f", "hls",
        os.path.join(output_dir, PLAYLIST_NAME),
    ]


def run_hls_segmenter(
    input_path: str,
    output_dir: str,
    ffmpeg_bin: str = "ffmpeg",
    segment_seconds: int = 10,
    timeout_seconds: Optional[float] = None,
) -> str:
    """
    Segments input_path into output_dir/index.m3u8 plus numbered .ts files.
    Returns the playlist path; raises TranscodeError with ffmpeg's stderr on failure.
    """
    os.makedirs(output_dir, exist_ok=True)
    cmd = build_hls_command(input_path, output_dir, ffmpeg_bin, segment_seconds)
    logger.info(f"running segmenter: {' '.join(cmd)}")

    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True, timeout=timeout_seconds)
    except subprocess.CalledProcessError as e:
        raise TranscodeError(
            f"ffmpeg exited with code {e.returncode}", stderr=e.stderr or "", returncode=e.returncode
        ) from e
    except subprocess.TimeoutExpired as e:
        stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else (e.stderr or "")
        raise TranscodeError(f"ffmpeg timed out after {timeout_seconds}s", stderr=stderr) from e
    except OSError as e:
        raise TranscodeError(f"could not start {ffmpeg_bin}: {e}") from e

    playlist_path = os.path.join(output_dir, PLAYLIST_NAME)
    if not os.path.exists(playlist_path):
        raise TranscodeError(f"ffmpeg finished but {playlist_path} was not written")
    return playlist_path


def probe_duration_ms(file_path: str, ffprobe_bin: str = "ffprobe", timeout_seconds: float = 60) -> Optional[int]:
    """
    Extracts the container duration using ffprobe.
    Returns None when the file cannot be probed.
    """
    cmd = [
        ffprobe_bin,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        file_path
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=True, timeout=timeout_seconds)
        data = json.loads(result.stdout)
        duration_sec = float(data["format"].get("duration", 0))
        return int(duration_sec * 1000)
    except (subprocess.SubprocessError, OSError, ValueError, KeyError) as e:
        logger.warning(f"could not probe {file_path}: {e}")
        return None
