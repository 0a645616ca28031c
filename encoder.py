"""FFmpeg encoder invocation.

Runs one external ffmpeg process per job with a fixed, named profile and turns
whatever happens into an :class:`EncodeOutcome`. Output is written next to the
final path and only renamed into place once ffmpeg exited cleanly and left a
non-empty file.
"""

import os
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from errors import EncodeError
from utils import FFMPEG_PATH, ENCODE_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Keep this much of stderr for the logs
DIAGNOSTICS_TAIL = 4000


@dataclass(frozen=True)
class EncodeProfile:
    """Fixed encoding settings for one output flavour."""
    name: str
    video_codec: str = "libvpx-vp9"
    video_bitrate: str = "1M"
    height: int = 720
    audio_codec: str = "libopus"
    audio_bitrate: str = "128k"
    container: str = "webm"
    media_type: str = "video/webm"
    overwrite: bool = True


WEBM_720P = EncodeProfile(name="webm_720p")


@dataclass
class EncodeOutcome:
    success: bool
    output_path: str
    diagnostics: str = ""

    @classmethod
    def failure(cls, output_path: str, diagnostics: str) -> "EncodeOutcome":
        return cls(success=False, output_path=output_path, diagnostics=diagnostics[-DIAGNOSTICS_TAIL:])


class EncoderInvoker:
    def __init__(self, ffmpeg_path: str = FFMPEG_PATH,
                 timeout_seconds: Optional[int] = ENCODE_TIMEOUT_SECONDS):
        self.ffmpeg_path = ffmpeg_path
        # 0 or None means no limit
        self.timeout_seconds = timeout_seconds or None

    def build_command(self, input_path: str, output_path: str, profile: EncodeProfile) -> list[str]:
        cmd = [self.ffmpeg_path]
        if profile.overwrite:
            cmd.append("-y")
        cmd += [
            "-i", input_path,
            # -2 keeps the width even and the aspect ratio intact
            "-vf", f"scale=-2:{profile.height}",
            "-c:v", profile.video_codec,
            "-b:v", profile.video_bitrate,
            "-c:a", profile.audio_codec,
            "-b:a", profile.audio_bitrate,
            "-f", profile.container,
            output_path,
        ]
        return cmd

    def encode(self, input_path: str, output_path: str, profile: EncodeProfile = WEBM_720P) -> EncodeOutcome:
        """
        Run ffmpeg synchronously. Never raises for encoder problems; the
        returned outcome says whether ``output_path`` now holds a complete file.
        """
        partial_path = f"{output_path}.part"
        try:
            self._run(input_path, partial_path, profile)
            os.replace(partial_path, output_path)
        except EncodeError as e:
            self._discard(partial_path)
            logger.warning(f"Encode of {input_path} failed: {e}")
            return EncodeOutcome.failure(output_path, e.diagnostics or str(e))
        except OSError as e:
            self._discard(partial_path)
            logger.error(f"Could not finalize {output_path}: {e}")
            return EncodeOutcome.failure(output_path, str(e))

        logger.info(f"Encoded {input_path} -> {output_path} ({profile.name})")
        return EncodeOutcome(success=True, output_path=output_path)

    def _run(self, input_path: str, partial_path: str, profile: EncodeProfile) -> None:
        cmd = self.build_command(input_path, partial_path, profile)
        logger.info(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=self.timeout_seconds,
            )
        except OSError as e:
            raise EncodeError(f"could not start encoder {self.ffmpeg_path}", str(e)) from e
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr.decode("utf-8", errors="ignore") if e.stderr else ""
            raise EncodeError(f"encoder exceeded {self.timeout_seconds}s", stderr) from e

        stderr = result.stderr.decode("utf-8", errors="ignore") if result.stderr else ""
        if result.returncode != 0:
            raise EncodeError(f"encoder exited with code {result.returncode}", stderr)
        if not os.path.exists(partial_path) or os.path.getsize(partial_path) == 0:
            raise EncodeError("encoder produced no output", stderr)

    @staticmethod
    def _discard(path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove partial output {path}: {e}")
