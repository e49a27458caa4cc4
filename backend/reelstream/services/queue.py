from redis import Redis
from rq import Queue
from reelstream.core.config import settings
from reelstream.core.logging_config import get_logger

logger = get_logger(__name__)

redis_conn = Redis.from_url(settings.REDIS_URL)
queue = Queue(connection=redis_conn)


def enqueue_job(func, *args, **kwargs):
    """enqueue a job on the default queue, returns the rq job"""
    rq_job = queue.enqueue(func, *args, **kwargs)
    logger.info(f"queued {func.__name__} as job {rq_job.id}")
    return rq_job


def is_session_queued(session_id: str) -> bool:
    """true when a job for this session is already waiting on the queue"""
    for job in queue.jobs:
        if job.args and job.args[0] == session_id:
            return True
    return False


def dispatch_processing(session_id: str):
    """hand a fully uploaded session to a worker"""
    from reelstream.worker import process_upload_session

    if is_session_queued(session_id):
        logger.info(f"processing already queued for {session_id}, skipping")
        return None
    return enqueue_job(
        process_upload_session,
        session_id,
        job_timeout=settings.PROCESS_JOB_TIMEOUT,
        job_id=f"process-{session_id}",
    )
