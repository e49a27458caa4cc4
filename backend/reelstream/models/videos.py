from datetime import datetime, timezone
from uuid import UUID, uuid4
from sqlmodel import SQLModel, Field
from typing import Optional

class Video(SQLModel, table=True):
    """catalog entry that a finished upload populates with its playlist references"""
    __tablename__ = "videos"
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    title: Optional[str] = Field(default=None, nullable=True)
    filename: Optional[str] = Field(default=None, nullable=True)
    # vod and live playlists are independent, either may be absent
    hls_vod_url: Optional[str] = Field(default=None, nullable=True, index=True)
    hls_live_url: Optional[str] = Field(default=None, nullable=True, index=True)
    duration_ms: int = Field(default=-1)
    upload_session_id: Optional[str] = Field(default=None, nullable=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
