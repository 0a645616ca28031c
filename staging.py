import os
import logging
import uuid
from typing import Optional

import aiofiles

from errors import EmptyUploadError, StageError, UploadTooLargeError
from utils import INPUT_DIR, OUTPUT_DIR, MAX_UPLOAD_BYTES, safe_extension

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ArtifactStager:
    """
    Owns the scratch area for uploaded inputs and the output area for
    finished artifacts.
    """

    def __init__(self, input_dir: str = INPUT_DIR, output_dir: str = OUTPUT_DIR,
                 max_upload_bytes: int = MAX_UPLOAD_BYTES, output_extension: str = ".webm"):
        self.input_dir = input_dir
        self.output_dir = output_dir
        self.max_upload_bytes = max_upload_bytes
        self.output_extension = output_extension
        os.makedirs(self.input_dir, exist_ok=True)
        os.makedirs(self.output_dir, exist_ok=True)

    async def stage_input(self, upload, suggested_name: Optional[str]) -> str:
        """
        Stream ``upload`` (anything with an async ``read(size)``) into a new,
        uniquely named scratch file and return its path.

        The declared name only contributes a sanitized extension.
        """
        path = os.path.join(self.input_dir, f"{uuid.uuid4().hex}{safe_extension(suggested_name)}")
        written = 0
        try:
            async with aiofiles.open(path, "wb") as out_file:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    written += len(chunk)
                    if self.max_upload_bytes and written > self.max_upload_bytes:
                        raise UploadTooLargeError(self.max_upload_bytes)
                    await out_file.write(chunk)
        except UploadTooLargeError:
            self._remove(path)
            logger.warning(f"Rejected upload '{suggested_name}': larger than {self.max_upload_bytes} bytes")
            raise
        except OSError as e:
            self._remove(path)
            logger.error(f"Could not stage upload '{suggested_name}': {e}")
            raise StageError("could not store uploaded file") from e

        if written == 0:
            self._remove(path)
            raise EmptyUploadError()

        logger.info(f"Staged {written} bytes from '{suggested_name}' at {path}")
        return path

    def release_input(self, path: str) -> None:
        if self._remove(path):
            logger.info(f"Released staged input {path}")

    def output_path(self, job_id: int) -> str:
        return os.path.join(self.output_dir, f"video_{int(job_id)}{self.output_extension}")

    def discard_output(self, path: str) -> None:
        """Best-effort removal of an artifact that will never be linked to a job."""
        if self._remove(path):
            logger.info(f"Discarded unusable output {path}")

    def sweep_scratch(self) -> int:
        """Remove every file left in the scratch area. Startup only."""
        removed = 0
        for entry in os.scandir(self.input_dir):
            if entry.is_file() and self._remove(entry.path):
                removed += 1
        return removed

    @staticmethod
    def _remove(path: str) -> bool:
        try:
            os.remove(path)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Could not remove {path}: {e}")
            return False
