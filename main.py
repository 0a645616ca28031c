import os
import logging
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, UploadFile, File, Form, HTTPException, status, Query
from fastapi.responses import JSONResponse, FileResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

# Local imports
from database import init_db, make_engine, make_session_factory, require_database_url
from delivery import DeliveryGate, NotReady, Unknown
from encoder import EncoderInvoker, WEBM_720P
from errors import ConfigError, EmptyUploadError, QueueFullError, StageError, StoreError, UploadTooLargeError
from models import JobStatus
from schemas import (
    DeliveryStatusResponse,
    HealthResponse,
    UploadResponse,
    VideoListResponse,
    VideoResponse,
)
from staging import ArtifactStager
from store import JobStore
from utils import (
    ENCODE_QUEUE_SIZE,
    ENCODE_WORKERS,
    HOST,
    PORT,
    PRIVACY_CHOICES,
    REDIS_URL,
    USE_CELERY,
    ffmpeg_available,
)
from worker import EncodeWorkerPool, JobRunner, celery_task, recover_orphaned_jobs

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

STATIC_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "static")


def redis_available(url: str = REDIS_URL) -> bool:
    try:
        import redis
        r = redis.from_url(url, socket_connect_timeout=1)
        r.ping()
        return True
    except Exception:
        return False


def create_app(
    database_url: Optional[str] = None,
    session_factory=None,
    stager: Optional[ArtifactStager] = None,
    encoder: Optional[EncoderInvoker] = None,
    use_celery: bool = USE_CELERY,
    workers: int = ENCODE_WORKERS,
    queue_size: int = ENCODE_QUEUE_SIZE,
) -> FastAPI:
    """
    Build the API with its collaborators. Without an injected session factory
    the database URL is required; a missing URL raises ``ConfigError``.
    """
    if session_factory is None:
        engine = make_engine(require_database_url(database_url))
        init_db(engine)
        session_factory = make_session_factory(engine)

    store = JobStore(session_factory)
    stager = stager or ArtifactStager()
    encoder = encoder or EncoderInvoker()
    runner = JobRunner(store, stager, encoder, WEBM_720P)
    pool = EncodeWorkerPool(runner, workers=workers, queue_size=queue_size)
    gate = DeliveryGate(store)

    # Celery is used only if explicitly configured and Redis answers
    celery_enabled = use_celery and redis_available()
    if use_celery and not celery_enabled:
        logger.warning("⚠️ USE_CELERY is set but Redis is not reachable. Using internal workers.")

    if ffmpeg_available(encoder.ffmpeg_path):
        logger.info("✅ FFmpeg found.")
    else:
        logger.warning(f"⚠️ FFmpeg not found at '{encoder.ffmpeg_path}'. Encodes will fail.")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if celery_enabled:
            logger.info("🚀 API running in Celery mode. Delegation enabled.")
        else:
            logger.info("🔧 Starting internal workers and recovering jobs (Stand-alone mode)")
            recover_orphaned_jobs(store, stager)
        pool.start()
        yield
        await run_in_threadpool(pool.stop)

    app = FastAPI(
        title="Video Encode Service",
        version="1.0.0",
        description="Upload videos, encode them to WebM in the background and stream the result",
        lifespan=lifespan,
    )
    app.state.store = store
    app.state.stager = stager
    app.state.pool = pool
    app.state.gate = gate

    def dispatch(job_id: int, staged_input: str):
        if celery_enabled:
            try:
                celery_task.delay(job_id, staged_input)
                logger.info(f"🚀 Job {job_id} sent to Celery")
                return
            except Exception as e:
                logger.warning(f"Celery dispatch of job {job_id} failed ({e}); using internal worker")
        pool.submit(job_id, staged_input)

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        """Health check for the encode service"""
        db_ok = store.ping()
        has_ffmpeg = ffmpeg_available(encoder.ffmpeg_path)
        backend = "Celery" if celery_enabled else "Internal Threading"
        return {
            "status": "healthy" if db_ok and has_ffmpeg else "degraded",
            "message": f"API is up. Backend: {backend}",
            "database": "connected" if db_ok else "unreachable",
            "ffmpeg": has_ffmpeg,
            "queues": {"encode_queue": pool.pending()},
        }

    @app.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
    async def upload_video(
        file: UploadFile = File(...),
        title: str = Form(""),
        description: str = Form(""),
        keywords: str = Form(""),
        privacy: str = Form(""),
    ):
        """
        Stage the uploaded video, create its job row and hand it to a worker.
        Returns as soon as the job is queued.
        """
        title = title.strip()
        privacy = privacy.strip().lower()
        if not title:
            raise HTTPException(status_code=400, detail="Title is required")
        if len(title) > 100:
            raise HTTPException(status_code=400, detail="Title must be at most 100 characters")
        if privacy not in PRIVACY_CHOICES:
            raise HTTPException(
                status_code=400,
                detail=f"Privacy must be one of: {', '.join(PRIVACY_CHOICES)}",
            )
        if len(keywords) > 500:
            raise HTTPException(status_code=400, detail="Keywords must be at most 500 characters")

        original_name = (file.filename or "unknown")[:255]

        try:
            staged_input = await stager.stage_input(file, file.filename)
        except UploadTooLargeError as e:
            raise HTTPException(status_code=413, detail=str(e))
        except EmptyUploadError:
            raise HTTPException(status_code=400, detail="Uploaded file is empty")
        except StageError:
            raise HTTPException(status_code=500, detail="Could not save upload")

        try:
            job_id = store.create(
                title=title,
                privacy=privacy,
                original_name=original_name,
                description=description.strip(),
                keywords=keywords.strip(),
            )
        except StoreError:
            stager.release_input(staged_input)
            raise HTTPException(status_code=500, detail="Could not create video job")

        try:
            dispatch(job_id, staged_input)
        except QueueFullError as e:
            logger.error(f"Job {job_id} rejected: {e}")
            store.set_status(job_id, JobStatus.FAILED)
            stager.release_input(staged_input)
            raise HTTPException(status_code=503, detail="Encoder is busy, try again later")

        return {
            "id": job_id,
            "status": JobStatus.PROCESSING,
            "title": title,
            "stream_url": f"/stream/{job_id}",
        }

    @app.get("/api/videos", response_model=VideoListResponse)
    async def list_videos(
        page: int = Query(1, ge=1),
        size: int = Query(15, ge=1, le=100),
        status: Optional[JobStatus] = None,
    ):
        """List videos with pagination and status filter"""
        try:
            items, total = store.list_jobs(page=page, size=size, status=status)
        except StoreError:
            raise HTTPException(status_code=500, detail="Could not list videos")
        return {
            "items": items,
            "total": total,
            "page": page,
            "size": size,
            "pages": (total + size - 1) // size,
        }

    @app.get("/api/videos/{video_id}", response_model=VideoResponse)
    async def get_video(video_id: int):
        try:
            video = store.get(video_id)
        except StoreError:
            raise HTTPException(status_code=500, detail="Could not look up video")
        if not video:
            raise HTTPException(status_code=404, detail="Video not found")
        return video

    @app.get("/stream/{video_id}")
    async def stream_video(video_id: int):
        """Serve the encoded artifact; Range requests get 206 partial content."""
        try:
            result = gate.resolve(video_id)
        except StoreError:
            raise HTTPException(status_code=500, detail="Could not look up video")

        if isinstance(result, Unknown):
            raise HTTPException(status_code=404, detail="Video not found")

        if isinstance(result, NotReady):
            if result.status == JobStatus.FAILED:
                body = DeliveryStatusResponse(
                    id=video_id, status=result.status, message="Encoding failed. Please upload the video again."
                )
                return JSONResponse(content=body.model_dump(mode="json"), status_code=400)
            body = DeliveryStatusResponse(
                id=video_id, status=result.status, message="Video is still being encoded."
            )
            return JSONResponse(content=body.model_dump(mode="json"), status_code=202)

        if not os.path.exists(result.path):
            logger.error(f"Job {video_id} is encoded but its artifact is missing")
            raise HTTPException(status_code=500, detail="Video file missing on server")

        return FileResponse(
            path=result.path,
            media_type=WEBM_720P.media_type,
            filename=f"video_{video_id}.{WEBM_720P.container}",
            content_disposition_type="inline",
            headers={"X-Video-Id": str(video_id)},
        )

    # Mount static files to root (must be after API routes)
    os.makedirs(STATIC_DIR, exist_ok=True)
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")

    return app


if __name__ == "__main__":
    import uvicorn
    try:
        app = create_app()
    except ConfigError as e:
        logger.critical(f"FATAL: {e}")
        raise SystemExit(1)
    print("\n🚀 Starting Video Encode Service...")
    print(f"📡 API: http://{HOST}:{PORT}")
    print(f"📚 Docs: http://{HOST}:{PORT}/docs")
    uvicorn.run(app, host=HOST, port=PORT)
