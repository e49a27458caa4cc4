from fastapi import FastAPI
from reelstream.core.db import init_db
from reelstream.api.v1 import health, admin, upload_chunked
from reelstream.core.config import settings
from reelstream.core.logging_config import setup_logging
import os

setup_logging()

app = FastAPI(title=settings.PROJECT_NAME)

@app.on_event("startup")
def on_startup():
    init_db()
    os.makedirs(settings.temp_video_dir, exist_ok=True)
    os.makedirs(settings.output_video_dir, exist_ok=True)

@app.get("/")
def read_root():
    return {"message": "Welcome to ReelStream API"}

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(upload_chunked.router, prefix="/api/upload-chunked", tags=["upload"])
app.include_router(admin.router, prefix="/api/admin", tags=["admin"])
