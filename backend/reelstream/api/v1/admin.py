from fastapi import APIRouter, HTTPException, Depends
from redis.exceptions import RedisError
from reelstream.core.config import settings
from reelstream.services.reclaimer import SessionReclaimer
from reelstream.services.storage_manager import StorageManager

router = APIRouter()


def get_storage_manager() -> StorageManager:
    return StorageManager(settings.temp_video_dir, settings.output_video_dir)


def get_reclaimer() -> SessionReclaimer:
    from reelstream.worker import build_reclaimer
    return build_reclaimer()


@router.get("/storage")
def get_storage_stats(storage_manager: StorageManager = Depends(get_storage_manager)):
    """get current storage usage statistics"""
    return storage_manager.get_disk_usage()


@router.post("/uploads/reclaim")
def trigger_reclaim(background: bool = False, reclaimer: SessionReclaimer = Depends(get_reclaimer)):
    """run a reclaim sweep now, or queue one for a worker with background=true"""
    if background:
        from reelstream.services.queue import enqueue_job
        from reelstream.worker import reclaim_stale_sessions

        try:
            job = enqueue_job(reclaim_stale_sessions)
        except RedisError as e:
            raise HTTPException(status_code=503, detail=f"queue unavailable: {e}")
        return {"success": True, "job_id": job.id}

    report = reclaimer.sweep()
    return {"success": not report.errors, "result": report.as_dict()}
