from fastapi import APIRouter, UploadFile, File, HTTPException, Depends, Query
from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID

from reelstream.core.errors import (
    ChunkIOError,
    InsufficientStorageError,
    InvalidChunkError,
    PathSafetyError,
    ReelStreamException,
    SessionNotFound,
    SessionStateError,
)
from reelstream.core.logging_config import get_logger
from reelstream.services.orchestrator import UploadOrchestrator

logger = get_logger(__name__)

router = APIRouter()


class InitUploadRequest(BaseModel):
    """either expected_chunks or filesize; filesize lets the server plan the chunking"""
    expected_chunks: Optional[int] = Field(default=None, ge=1)
    filesize: Optional[int] = Field(default=None, gt=0)
    chunk_size: Optional[int] = Field(default=None, gt=0)
    video_id: Optional[UUID] = None
    filename: Optional[str] = None


def get_orchestrator() -> UploadOrchestrator:
    from reelstream.worker import build_orchestrator
    return build_orchestrator()


def to_http_error(e: ReelStreamException) -> HTTPException:
    if isinstance(e, SessionNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, SessionStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (PathSafetyError, InvalidChunkError, InsufficientStorageError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ChunkIOError):
        logger.error(f"chunk write failed: {e}")
        return HTTPException(status_code=500, detail="failed to store chunk")
    return HTTPException(status_code=500, detail=str(e))


@router.post("/init")
def init_chunked_upload(
    req: InitUploadRequest,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """initialize a chunked upload session"""
    if not req.expected_chunks and not req.filesize:
        raise HTTPException(status_code=400, detail="expected_chunks or filesize is required")
    try:
        session = orchestrator.create_session(
            expected_chunks=req.expected_chunks,
            filesize=req.filesize,
            chunk_size=req.chunk_size,
            video_id=str(req.video_id) if req.video_id else None,
            filename=req.filename,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ReelStreamException as e:
        raise to_http_error(e)

    return {
        "session_id": session.session_id,
        "expected_chunks": session.expected_chunks,
        "chunk_size": session.chunk_size,
        "available_bytes": session.available_bytes,
        "status": session.status.value,
    }


@router.put("/{session_id}/chunk")
def upload_chunk(
    session_id: str,
    chunk_index: int = Query(...),
    chunk: UploadFile = File(...),
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """upload a single chunk; re-sending an index replaces the earlier bytes"""
    try:
        session = orchestrator.write_chunk(session_id, chunk_index, chunk.file)
    except ReelStreamException as e:
        raise to_http_error(e)

    return {
        "session_id": session_id,
        "chunk_index": chunk_index,
        "status": session.status.value if session else "failed",
        "received_count": session.received_count if session else None,
        "expected_chunks": session.expected_chunks if session else None,
    }


@router.get("/{session_id}/status")
def get_upload_status(
    session_id: str,
    orchestrator: UploadOrchestrator = Depends(get_orchestrator),
):
    """check status of chunked upload"""
    try:
        return orchestrator.get_status(session_id)
    except ReelStreamException as e:
        raise to_http_error(e)
