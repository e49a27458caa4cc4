from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from reelstream.core.errors import CatalogError, retry_with_backoff
from reelstream.core.logging_config import get_logger
from reelstream.models import Video

logger = get_logger(__name__)


class CatalogStore:
    """writes finished playlist references back onto catalog video rows"""

    def __init__(self, engine):
        self.engine = engine

    @retry_with_backoff(max_retries=3, initial_delay=1.0, retry_on=(OperationalError,))
    def commit_playlists(
        self,
        video_id: str,
        hls_vod_url: Optional[str],
        hls_live_url: Optional[str],
        duration_ms: Optional[int] = None,
        session_id: Optional[str] = None,
    ) -> Video:
        try:
            video_uuid = UUID(str(video_id))
        except ValueError as e:
            raise CatalogError(f"invalid video id {video_id!r}") from e

        with Session(self.engine) as session:
            video = session.get(Video, video_uuid)
            if not video:
                raise CatalogError(f"video {video_id} not found in catalog")

            # only overwrite the targets this run produced
            if hls_vod_url is not None:
                video.hls_vod_url = hls_vod_url
            if hls_live_url is not None:
                video.hls_live_url = hls_live_url
            if duration_ms is not None:
                video.duration_ms = duration_ms
            if session_id:
                video.upload_session_id = session_id
            video.updated_at = datetime.now(timezone.utc)

            session.add(video)
            session.commit()
            session.refresh(video)

        logger.info(f"catalog video {video_id} updated (vod={hls_vod_url}, live={hls_live_url})")
        return video
