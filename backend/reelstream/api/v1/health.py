from fastapi import APIRouter, Depends
from sqlmodel import Session, select
from reelstream.core.db import get_session
from reelstream.models import Video
from datetime import datetime, timezone

router = APIRouter()


def get_redis():
    from reelstream.services.queue import redis_conn
    return redis_conn


@router.get("/")
def health_check():
    """basic liveness check"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "reelstream-backend"
    }


@router.get("/ready")
def readiness_check(session: Session = Depends(get_session), redis_conn=Depends(get_redis)):
    """readiness check - verifies the catalog database and the session store"""
    checks = {}
    all_healthy = True

    # check database
    try:
        session.exec(select(Video).limit(1))
        checks["database"] = {"status": "healthy", "message": "connected"}
    except Exception as e:
        checks["database"] = {"status": "unhealthy", "message": str(e)}
        all_healthy = False

    # check redis
    try:
        redis_conn.ping()
        checks["redis"] = {"status": "healthy", "message": "connected"}
    except Exception as e:
        checks["redis"] = {"status": "unhealthy", "message": str(e)}
        all_healthy = False

    return {
        "status": "healthy" if all_healthy else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks
    }
