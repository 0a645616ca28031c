import time
import logging
import queue
import threading
from celery import Celery
from dotenv import load_dotenv

from database import make_engine, make_session_factory, require_database_url
from encoder import EncoderInvoker, EncodeProfile, WEBM_720P
from errors import QueueFullError, StoreError
from models import JobStatus
from staging import ArtifactStager
from store import JobStore
from utils import REDIS_URL, ENCODE_WORKERS, ENCODE_QUEUE_SIZE

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Initialize Celery
celery_app = Celery(
    "encode_worker",
    broker=REDIS_URL,
    backend=REDIS_URL
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # One encode at a time per worker process; ffmpeg already uses all cores
    worker_prefetch_multiplier=1,
    task_acks_late=True,
)


class JobRunner:
    """
    Drives one job from ``processing`` to ``encoded`` or ``failed``.

    The runner is the only writer of a job's status after creation. The staged
    input is released exactly once, whatever the encoder does.
    """

    def __init__(self, store: JobStore, stager: ArtifactStager, encoder: EncoderInvoker,
                 profile: EncodeProfile = WEBM_720P):
        self.store = store
        self.stager = stager
        self.encoder = encoder
        self.profile = profile

    def run(self, job_id: int, staged_input: str) -> JobStatus:
        logger.info(f"Processing job {job_id}...")
        try:
            finished = self._finished_status(job_id)
            if finished is not None:
                logger.warning(f"Job {job_id} already {finished.value}; skipping encode")
                return finished

            self.store.set_status(job_id, JobStatus.PROCESSING)
            output_path = self.stager.output_path(job_id)

            try:
                outcome = self.encoder.encode(staged_input, output_path, self.profile)
            except Exception:
                logger.error(f"Encoder crashed on job {job_id}", exc_info=True)
                outcome = None

            if outcome is not None and outcome.success:
                self.store.set_status_and_artifact(job_id, JobStatus.ENCODED, output_path)
                logger.info(f"Job {job_id} encoded to {output_path}")
                return JobStatus.ENCODED

            if outcome is not None:
                logger.error(f"Job {job_id} failed: {outcome.diagnostics}")
            # The output path may belong to an earlier successful run of this job
            if self.store.set_status(job_id, JobStatus.FAILED):
                self.stager.discard_output(output_path)
            return JobStatus.FAILED
        finally:
            self.stager.release_input(staged_input)

    def _finished_status(self, job_id: int):
        """Terminal status of the row, or None when it is processing or unreadable."""
        try:
            found = self.store.get_delivery(job_id)
        except StoreError:
            return None
        if found is None or not found[1].is_terminal:
            return None
        return found[1]


class EncodeWorkerPool:
    """Fixed number of worker threads draining a bounded job queue."""

    def __init__(self, runner: JobRunner, workers: int = ENCODE_WORKERS,
                 queue_size: int = ENCODE_QUEUE_SIZE):
        self.runner = runner
        self.workers = max(1, workers)
        self.tasks = queue.Queue(maxsize=max(0, queue_size))
        self._threads = []
        self._lock = threading.Lock()
        self._stopping = threading.Event()

    def start(self):
        with self._lock:
            if self._threads:
                return
            self._stopping.clear()
            for i in range(self.workers):
                thread = threading.Thread(target=self._loop, name=f"encode-worker-{i}", daemon=True)
                thread.start()
                self._threads.append(thread)
        logger.info(f"✅ Started {self.workers} encode worker thread(s).")

    def submit(self, job_id: int, staged_input: str) -> None:
        try:
            self.tasks.put_nowait((job_id, staged_input))
        except queue.Full:
            raise QueueFullError(f"encode queue is full ({self.tasks.maxsize} pending)")
        logger.info(f"🔧 Job {job_id} sent to internal worker")

    def pending(self) -> int:
        return self.tasks.qsize()

    def join(self) -> None:
        """Block until every submitted job has finished."""
        self.tasks.join()

    def stop(self, timeout: float = 5.0) -> None:
        """
        Stop taking jobs and wait up to ``timeout`` per thread. An encode still
        running is left to finish on its daemon thread; queued jobs are dropped
        with their staged input and stay ``processing`` until the next startup.
        """
        self._stopping.set()
        with self._lock:
            threads, self._threads = self._threads, []
        for thread in threads:
            thread.join(timeout)
        dropped = self._drain()
        if dropped:
            logger.warning(f"Dropped {dropped} queued job(s) on shutdown")

    def _drain(self) -> int:
        dropped = 0
        while True:
            try:
                job_id, staged_input = self.tasks.get_nowait()
            except queue.Empty:
                return dropped
            try:
                self.runner.stager.release_input(staged_input)
            finally:
                self.tasks.task_done()
            dropped += 1

    def _loop(self):
        while not self._stopping.is_set():
            try:
                job_id, staged_input = self.tasks.get(timeout=1)
            except queue.Empty:
                continue
            try:
                self.runner.run(job_id, staged_input)
            except Exception as e:
                logger.error(f"Internal worker error: {e}", exc_info=True)
                time.sleep(1)
            finally:
                self.tasks.task_done()


def recover_orphaned_jobs(store: JobStore, stager: ArtifactStager) -> None:
    """
    Jobs still ``processing`` at startup lost their runner; their staged input
    cannot be matched back to them, so they fail and the scratch area is cleared.
    """
    failed = store.fail_orphaned()
    swept = stager.sweep_scratch()
    if failed or swept:
        logger.info(f"🔄 Marked {failed} orphaned job(s) failed, removed {swept} scratch file(s)")


_celery_runner = None


def get_celery_runner() -> JobRunner:
    global _celery_runner
    if _celery_runner is None:
        engine = make_engine(require_database_url())
        _celery_runner = JobRunner(
            JobStore(make_session_factory(engine)),
            ArtifactStager(),
            EncoderInvoker(),
        )
    return _celery_runner


@celery_app.task(name="encode_video")
def celery_task(job_id: int, staged_input: str):
    return get_celery_runner().run(job_id, staged_input).value


def run_worker():
    """Run as a Celery node instead of the in-process pool."""
    logging.basicConfig(level=logging.INFO)
    logger.info("Starting worker as Celery node...")
    celery_app.start(argv=["worker", "--loglevel=info", "-P", "solo"])


if __name__ == "__main__":
    run_worker()
