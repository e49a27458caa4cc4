import os


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    PROJECT_NAME: str = "ReelStream"
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://postgres:postgres@db:5432/reelstream")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # storage paths
    DATA_DIR: str = os.getenv("DATA_DIR", "/data")
    UPLOAD_ROOT: str = os.getenv("UPLOAD_ROOT", os.path.join(DATA_DIR, "uploads"))

    # session lifecycle (seconds)
    SESSION_TTL_SECONDS: int = int(os.getenv("SESSION_TTL_SECONDS", str(60 * 60 * 24)))
    RETENTION_TTL_SECONDS: int = int(os.getenv("RETENTION_TTL_SECONDS", str(60 * 60 * 24 * 7)))
    STALE_THRESHOLD_SECONDS: int = int(os.getenv("STALE_THRESHOLD_SECONDS", str(60 * 60 * 12)))
    RECLAIM_INTERVAL_SECONDS: int = int(os.getenv("RECLAIM_INTERVAL_SECONDS", str(60 * 60)))
    LOCK_TIMEOUT_SECONDS: int = int(os.getenv("LOCK_TIMEOUT_SECONDS", "30"))

    # chunk plan
    DEFAULT_CHUNK_SIZE: int = int(os.getenv("DEFAULT_CHUNK_SIZE", str(10 * 1024 * 1024)))
    MAX_CHUNKS: int = int(os.getenv("MAX_CHUNKS", "1000"))
    UPLOAD_RESERVE_BYTES: int = int(os.getenv("UPLOAD_RESERVE_BYTES", str(100 * 1024 * 1024)))  # free space kept beyond a declared filesize

    # hls output
    HLS_SEGMENT_SECONDS: int = int(os.getenv("HLS_SEGMENT_SECONDS", "10"))
    LIVE_WINDOW_SEGMENTS: int = int(os.getenv("LIVE_WINDOW_SEGMENTS", "0"))  # 0 = every segment
    HLS_PUBLIC_BASE_URL: str = os.getenv("HLS_PUBLIC_BASE_URL", "/media/hls")
    FFMPEG_BIN: str = os.getenv("FFMPEG_BIN", "ffmpeg")
    FFPROBE_BIN: str = os.getenv("FFPROBE_BIN", "ffprobe")
    TRANSCODE_TIMEOUT_SECONDS: int = int(os.getenv("TRANSCODE_TIMEOUT_SECONDS", str(60 * 60)))
    HEARTBEAT_SECONDS: int = int(os.getenv("HEARTBEAT_SECONDS", "60"))

    # workers
    PROCESS_INLINE: bool = _env_bool("PROCESS_INLINE", "0")  # run assembly/transcode in the request process
    PROCESS_JOB_TIMEOUT: str = os.getenv("PROCESS_JOB_TIMEOUT", "2h")

    # logging
    PUBLISH_EVENTS: bool = _env_bool("PUBLISH_EVENTS", "1")  # mirror pipeline events to redis pub/sub
    LOG_DIR: str = os.getenv("LOG_DIR", "")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def temp_video_dir(self) -> str:
        """root of per-session chunk directories"""
        return os.path.join(self.UPLOAD_ROOT, "tmp", "videos")

    @property
    def output_video_dir(self) -> str:
        """root of per-asset assembled media and hls output"""
        return os.path.join(self.UPLOAD_ROOT, "videos")


settings = Settings()
