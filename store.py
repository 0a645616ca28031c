"""
Job store: the durable table of video jobs.

Every method opens its own short-lived session from the injected factory, so a
single store instance is safe to share between request handlers and encode
worker threads. Status writes are single-row conditional updates; the row only
moves while it is still ``processing``.
"""
import logging
from typing import Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from errors import StoreError
from models import Video, JobStatus

logger = logging.getLogger(__name__)


class JobStore:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def create(self, title: str, privacy: str, original_name: str,
               description: str = "", keywords: Optional[str] = None) -> int:
        """Insert a row in ``processing`` and return its id."""
        db = self._session_factory()
        try:
            video = Video(
                title=title,
                description=description or "",
                keywords=keywords or None,
                privacy=privacy,
                original_name=original_name,
                status=JobStatus.PROCESSING,
            )
            db.add(video)
            db.commit()
            db.refresh(video)
            logger.info(f"Created job {video.id} for upload '{original_name}'")
            return video.id
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Could not create job row: {e}")
            raise StoreError("could not create job") from e
        finally:
            db.close()

    def _transition(self, job_id: int, values: dict) -> bool:
        db = self._session_factory()
        try:
            updated = (
                db.query(Video)
                .filter(Video.id == job_id, Video.status == JobStatus.PROCESSING)
                .update(values, synchronize_session=False)
            )
            db.commit()
            if not updated:
                logger.warning(f"Job {job_id} is not processing; update {values} ignored")
            return bool(updated)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Status update for job {job_id} failed: {e}", exc_info=True)
            return False
        finally:
            db.close()

    def set_status(self, job_id: int, status: JobStatus) -> bool:
        """
        Best-effort status write. Returns False instead of raising when the
        database is unreachable or the row already left ``processing``.
        """
        return self._transition(job_id, {"status": status})

    def set_status_and_artifact(self, job_id: int, status: JobStatus, path: str) -> bool:
        return self._transition(job_id, {"status": status, "encoded_path": path})

    def get_delivery(self, job_id: int):
        """Return ``(encoded_path, status)`` or None when the id is unknown."""
        db = self._session_factory()
        try:
            row = (
                db.query(Video.encoded_path, Video.status)
                .filter(Video.id == job_id)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Lookup of job {job_id} failed: {e}")
            raise StoreError("could not look up job") from e
        finally:
            db.close()
        if row is None:
            return None
        return row[0], row[1]

    def get(self, job_id: int) -> Optional[Video]:
        db = self._session_factory()
        try:
            return db.query(Video).filter(Video.id == job_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Lookup of job {job_id} failed: {e}")
            raise StoreError("could not look up job") from e
        finally:
            db.close()

    def list_jobs(self, page: int = 1, size: int = 15, status: Optional[JobStatus] = None):
        """Return ``(items, total)`` ordered newest first."""
        db = self._session_factory()
        try:
            query = db.query(Video)
            if status:
                query = query.filter(Video.status == status)
            total = query.count()
            items = (
                query.order_by(Video.created_at.desc(), Video.id.desc())
                .offset((page - 1) * size)
                .limit(size)
                .all()
            )
            return items, total
        except SQLAlchemyError as e:
            logger.error(f"Listing jobs failed: {e}")
            raise StoreError("could not list jobs") from e
        finally:
            db.close()

    def fail_orphaned(self) -> int:
        """Move every ``processing`` row to ``failed``. Used at startup only."""
        db = self._session_factory()
        try:
            count = (
                db.query(Video)
                .filter(Video.status == JobStatus.PROCESSING)
                .update({"status": JobStatus.FAILED}, synchronize_session=False)
            )
            db.commit()
            return count
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error recovering orphaned jobs: {e}")
            return 0
        finally:
            db.close()

    def ping(self) -> bool:
        db = self._session_factory()
        try:
            db.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        finally:
            db.close()
