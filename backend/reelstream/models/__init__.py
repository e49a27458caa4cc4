from .videos import Video
from .upload_session import UploadSession, UploadStatus, SCHEMA_VERSION

__all__ = ["Video", "UploadSession", "UploadStatus", "SCHEMA_VERSION"]
