import os
import re
import shutil
from dotenv import load_dotenv

load_dotenv()


def env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


def env_bool(name: str, default: bool = False) -> bool:
    return str(os.getenv(name, str(default))).lower() in {"1", "true", "yes", "on"}


STORAGE_PATH = os.getenv("STORAGE_PATH", "./storage")
INPUT_DIR = os.path.join(STORAGE_PATH, "inputs")
OUTPUT_DIR = os.path.join(STORAGE_PATH, "outputs")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
USE_CELERY = env_bool("USE_CELERY", False)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = env_int("PORT", 8080)

FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
ENCODE_TIMEOUT_SECONDS = env_int("ENCODE_TIMEOUT_SECONDS", 3600)
MAX_UPLOAD_BYTES = env_int("MAX_UPLOAD_BYTES", 2 * 1024 ** 3)
ENCODE_WORKERS = env_int("ENCODE_WORKERS", 2)
ENCODE_QUEUE_SIZE = env_int("ENCODE_QUEUE_SIZE", 32)

PRIVACY_CHOICES = ("public", "unlisted", "private")

_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]{1,10}")


def safe_extension(filename) -> str:
    """
    Reduce a client-declared filename to a lowercase extension that is safe to
    put in a path. Anything unusual collapses to an empty string.
    """
    if not filename:
        return ""
    _, ext = os.path.splitext(os.path.basename(filename.replace("\\", "/")))
    if not _EXTENSION_RE.fullmatch(ext):
        return ""
    return ext.lower()


def ffmpeg_available(ffmpeg_path: str = FFMPEG_PATH) -> bool:
    return shutil.which(ffmpeg_path) is not None
