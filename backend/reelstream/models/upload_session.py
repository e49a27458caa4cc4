from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from reelstream.core.errors import SessionBusyError, SessionTerminalStateError

SCHEMA_VERSION = 1


class UploadStatus(str, Enum):
    PENDING = "pending"
    UPLOADING = "uploading"
    ASSEMBLING = "assembling"
    TRANSCODING = "transcoding"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadStatus.COMPLETED, UploadStatus.FAILED)

    @property
    def is_processing(self) -> bool:
        return self in (UploadStatus.ASSEMBLING, UploadStatus.TRANSCODING)


class UploadSession(BaseModel):
    """
    per-upload metadata held in the session store

    timestamps are epoch milliseconds. unknown fields in a stored record are
    dropped on load so older or foreign writers cannot smuggle data through.
    """
    model_config = ConfigDict(extra="ignore", use_enum_values=False)

    schema_version: int = SCHEMA_VERSION
    session_id: str
    status: UploadStatus = UploadStatus.PENDING
    created_at: int
    updated_at: int
    video_id: Optional[str] = None

    expected_chunks: int = Field(ge=1)
    received_chunks: List[int] = Field(default_factory=list)

    filename: Optional[str] = None
    filesize: Optional[int] = None
    chunk_size: Optional[int] = None
    available_bytes: Optional[int] = None

    media_path: Optional[str] = None
    hls_vod_url: Optional[str] = None
    hls_live_url: Optional[str] = None
    duration_ms: Optional[int] = None

    error: Optional[str] = None
    error_type: Optional[str] = None

    @property
    def received_count(self) -> int:
        return len(self.received_chunks)

    @property
    def is_complete(self) -> bool:
        return self.received_count >= self.expected_chunks

    @property
    def progress_percent(self) -> int:
        if self.status == UploadStatus.COMPLETED:
            return 100
        return int(self.received_count * 100 / self.expected_chunks)

    def ensure_accepts_chunks(self) -> None:
        """chunks are only taken while pending or uploading"""
        if self.status.is_terminal:
            raise SessionTerminalStateError(
                f"upload session {self.session_id} is {self.status.value}, chunk rejected"
            )
        if self.status.is_processing:
            raise SessionBusyError(
                f"upload session {self.session_id} is {self.status.value}, chunk rejected"
            )

    def add_chunk(self, ordinal: int) -> bool:
        """record an ordinal, returns False when it was already counted"""
        if ordinal in self.received_chunks:
            return False
        self.received_chunks.append(ordinal)
        self.received_chunks.sort()
        return True

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw) -> "UploadSession":
        return cls.model_validate_json(raw)
