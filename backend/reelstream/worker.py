from reelstream.core.config import settings
from reelstream.core.db import engine
from reelstream.core.errors import handle_worker_error
from reelstream.core.logging_config import get_logger, setup_logging
from reelstream.services.assembler import Assembler
from reelstream.services.catalog import CatalogStore
from reelstream.services.chunk_writer import ChunkWriter
from reelstream.services.ffmpeg import probe_duration_ms
from reelstream.services.log_publisher import publish_log
from reelstream.services.orchestrator import UploadOrchestrator
from reelstream.services.reclaimer import SessionReclaimer
from reelstream.services.session_store import RedisSessionStore, SessionStore
from reelstream.services.transcoder import Transcoder
from rq import get_current_job
import time

logger = get_logger(__name__)

_store = None


def get_store() -> SessionStore:
    """process-wide redis session store, created on first use"""
    global _store
    if _store is None:
        _store = RedisSessionStore.from_url(
            settings.REDIS_URL, lock_timeout=settings.LOCK_TIMEOUT_SECONDS
        )
    return _store


def build_orchestrator(store: SessionStore = None, dispatcher=None, catalog=None) -> UploadOrchestrator:
    """wire an orchestrator from settings; dispatcher None with PROCESS_INLINE off means rq"""
    store = store or get_store()
    if dispatcher is None and not settings.PROCESS_INLINE:
        from reelstream.services.queue import dispatch_processing
        dispatcher = dispatch_processing

    temp_root = settings.temp_video_dir
    return UploadOrchestrator(
        store=store,
        chunk_writer=ChunkWriter(store, temp_root, settings.SESSION_TTL_SECONDS),
        assembler=Assembler(temp_root),
        transcoder=Transcoder(
            ffmpeg_bin=settings.FFMPEG_BIN,
            segment_seconds=settings.HLS_SEGMENT_SECONDS,
            timeout_seconds=settings.TRANSCODE_TIMEOUT_SECONDS,
            public_base_url=settings.HLS_PUBLIC_BASE_URL,
            live_window_segments=settings.LIVE_WINDOW_SEGMENTS,
        ),
        output_root=settings.output_video_dir,
        catalog=catalog if catalog is not None else CatalogStore(engine),
        dispatcher=dispatcher,
        session_ttl_seconds=settings.SESSION_TTL_SECONDS,
        retention_ttl_seconds=settings.RETENTION_TTL_SECONDS,
        heartbeat_seconds=settings.HEARTBEAT_SECONDS,
        default_chunk_size=settings.DEFAULT_CHUNK_SIZE,
        max_chunks=settings.MAX_CHUNKS,
        reserve_bytes=settings.UPLOAD_RESERVE_BYTES,
        probe_duration=lambda path: probe_duration_ms(path, settings.FFPROBE_BIN),
    )


def build_reclaimer(store: SessionStore = None) -> SessionReclaimer:
    return SessionReclaimer(
        store=store or get_store(),
        temp_root=settings.temp_video_dir,
        stale_threshold_seconds=settings.STALE_THRESHOLD_SECONDS,
        retention_ttl_seconds=settings.RETENTION_TTL_SECONDS,
    )


def process_upload_session(session_id: str):
    """rq job: assemble and transcode a session whose chunks have all arrived"""
    current_job = get_current_job()
    job_id = current_job.id if current_job else f"inline-{session_id}"

    try:
        session = build_orchestrator().process(session_id)
    except Exception as e:
        handle_worker_error(job_id, e)
        raise

    if session is not None:
        logger.info(f"job {job_id} finished with session {session_id} {session.status.value}")
        return session.status.value
    return None


def reclaim_stale_sessions():
    """rq job: one reclaim sweep"""
    current_job = get_current_job()
    job_id = current_job.id if current_job else "reclaim-inline"

    try:
        report = build_reclaimer().sweep()
    except Exception as e:
        handle_worker_error(job_id, e)
        raise
    return report.as_dict()


def reclaim_poller(interval_seconds: int = None, max_sweeps: int = None, sleep=time.sleep):
    """background loop that sweeps stale sessions every interval_seconds"""
    interval_seconds = interval_seconds or settings.RECLAIM_INTERVAL_SECONDS
    reclaimer = build_reclaimer()

    publish_log('reclaimer', 'INFO', 'session reclaim poller started', {'interval_seconds': interval_seconds})
    logger.info(f"session reclaim poller started, sweeping every {interval_seconds}s")

    sweeps = 0
    while max_sweeps is None or sweeps < max_sweeps:
        try:
            report = reclaimer.sweep()
            logger.info(
                f"sweep {sweeps + 1}: scanned={report.scanned} reclaimed={len(report.reclaimed)} "
                f"errors={len(report.errors)}"
            )
        except Exception as e:
            # a broken sweep must not kill the poller; the next interval retries
            logger.exception(f"reclaim sweep failed: {e}")
            publish_log('reclaimer', 'ERROR', f'reclaim sweep failed: {e}')
        sweeps += 1
        if max_sweeps is None or sweeps < max_sweeps:
            sleep(interval_seconds)


if __name__ == "__main__":
    from redis import Redis
    from rq import Worker, Queue

    setup_logging()
    redis_conn = Redis.from_url(settings.REDIS_URL)
    queue = Queue(connection=redis_conn)

    logger.info(f"starting rq worker, listening on queue: {queue.name}")
    worker = Worker([queue], connection=redis_conn)
    worker.work()
