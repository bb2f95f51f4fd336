"""
Audio probing, transcoding and speed adjustment using ffmpeg/ffprobe.
Every operation works on a local file and writes its output into the
transcoder's work directory.
"""

import json
import logging
import os
import subprocess
import uuid
from contextlib import contextmanager
from pathlib import Path

from recscribe.core.security_utils import run_subprocess_capture
from recscribe.core.error_codes import JobError
from recscribe.core.constants import (
    ErrorCode, FFMPEG_BIN, FFPROBE_BIN, CONVERT_PROFILES, ConvertProfile,
    CONVERTED_EXT, ATEMPO_MIN, ATEMPO_MAX,
)
from recscribe.core.models import ConversionResult

logger = logging.getLogger(__name__)

_PROBE_TIMEOUT = 30
_CONVERT_TIMEOUT = 3600
_SPEEDUP_TIMEOUT = 3600
_EXTRACT_TIMEOUT = 600


def atempo_chain(factor: float) -> str:
    """
    Build an ffmpeg atempo filter chain for ``factor``.
    A single atempo stage only accepts 0.5 to 2.0, so larger or smaller
    factors are split into several stages whose product is ``factor``.
    """
    if factor <= 0:
        raise ValueError(f"Speed factor must be positive, got {factor}")

    stages = []
    remaining = factor
    while remaining > ATEMPO_MAX:
        stages.append(ATEMPO_MAX)
        remaining /= ATEMPO_MAX
    while remaining < ATEMPO_MIN:
        stages.append(ATEMPO_MIN)
        remaining /= ATEMPO_MIN
    stages.append(remaining)
    return ",".join(f"atempo={s:g}" for s in stages)


class FfmpegTranscoder:
    """ffmpeg-backed implementation of the transcoder contract."""

    def __init__(self, work_dir: Path, ffmpeg: str = FFMPEG_BIN, ffprobe: str = FFPROBE_BIN):
        self.work_dir = Path(work_dir)
        self.ffmpeg = ffmpeg
        self.ffprobe = ffprobe

    def _output_path(self, tag: str, ext: str = CONVERTED_EXT) -> Path:
        self.work_dir.mkdir(parents=True, exist_ok=True)
        return self.work_dir / f"{uuid.uuid4().hex}-{tag}{ext}"

    def _run_ffmpeg(self, args: list[str], output_path: Path, code: str, timeout: int, what: str):
        """Run ffmpeg into ``output_path``. On any failure the partial output is removed."""
        try:
            try:
                result = run_subprocess_capture(args, timeout=timeout)
            except subprocess.TimeoutExpired:
                raise JobError(ErrorCode.FFMPEG_TIMEOUT, f"ffmpeg {what} timed out after {timeout}s")
            except OSError as e:
                raise JobError(code, f"ffmpeg {what} failed: {e}")

            if result.returncode != 0:
                stderr = result.stderr or ""
                raise JobError(code, f"ffmpeg {what} failed (rc={result.returncode}): {stderr[-300:]}")

            if not output_path.exists():
                raise JobError(code, f"ffmpeg {what} produced no output file")
        except BaseException:
            self.cleanup(output_path)
            raise

    def probe_duration(self, path) -> float:
        """Get audio duration in seconds using ffprobe."""
        args = [
            self.ffprobe,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "json",
            str(path),
        ]

        try:
            result = run_subprocess_capture(args, timeout=_PROBE_TIMEOUT)
        except OSError as e:
            raise JobError(ErrorCode.FFPROBE, f"ffprobe failed: {e}")

        if result.returncode != 0:
            raise JobError(ErrorCode.FFPROBE,
                           f"ffprobe failed (rc={result.returncode}): {(result.stderr or '')[:300]}")

        try:
            duration = float(json.loads(result.stdout)['format']['duration'])
        except (ValueError, KeyError, TypeError):
            raise JobError(ErrorCode.FFPROBE, f"Could not read duration of {Path(path).name}")

        if duration <= 0:
            raise JobError(ErrorCode.FFPROBE, f"Non-positive duration ({duration}) for {Path(path).name}")

        return duration

    def convert(self, path, profile: str = ConvertProfile.VOICE) -> ConversionResult:
        """
        Transcode to AAC in an M4A container for browser playback.
        Returns the converted path and its probed duration.
        """
        settings = CONVERT_PROFILES.get(profile)
        if settings is None:
            raise JobError(ErrorCode.FFMPEG_CONVERT, f"Unknown conversion profile {profile!r}")

        output_path = self._output_path("converted")
        args = [
            self.ffmpeg,
            "-y",
            "-i", str(path),
            "-vn",
            "-codec:a", "aac",
            "-b:a", settings['bitrate'],
            "-ac", str(settings['channels']),
            "-ar", str(settings['sample_rate']),
            "-movflags", "+faststart",
            str(output_path),
        ]
        self._run_ffmpeg(args, output_path, ErrorCode.FFMPEG_CONVERT, _CONVERT_TIMEOUT, "convert")

        try:
            duration = self.probe_duration(output_path)
        except BaseException:
            self.cleanup(output_path)
            raise
        logger.info("Converted %s -> %s (%.1fs, profile=%s)",
                    Path(path).name, output_path.name, duration, profile)
        return ConversionResult(path=str(output_path), duration=duration)

    def speed_up(self, path, factor: float) -> str:
        """Time-stretch audio by ``factor`` (pitch preserved). Returns the new path."""
        output_path = self._output_path("speed")
        args = [
            self.ffmpeg,
            "-y",
            "-i", str(path),
            "-vn",
            "-af", atempo_chain(factor),
            "-codec:a", "aac",
            "-b:a", "64k",
            "-ac", "1",
            str(output_path),
        ]
        self._run_ffmpeg(args, output_path, ErrorCode.FFMPEG_SPEEDUP, _SPEEDUP_TIMEOUT, "speed-up")
        logger.info("Sped up %s by x%g -> %s", Path(path).name, factor, output_path.name)
        return str(output_path)

    def extract_segment(self, path, output_path, start: float, duration: float) -> str:
        """Cut [start, start+duration) out of ``path`` into ``output_path``."""
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        args = [
            self.ffmpeg,
            "-y",
            "-ss", f"{start:.3f}",
            "-i", str(path),
            "-t", f"{duration:.3f}",
            "-vn",
            "-codec:a", "aac",
            "-b:a", "64k",
            "-ac", "1",
            str(output_path),
        ]
        self._run_ffmpeg(args, output_path, ErrorCode.CHUNKING, _EXTRACT_TIMEOUT, "extract")
        return str(output_path)

    def cleanup(self, path):
        """Best-effort delete of a transient artifact."""
        if not path:
            return
        try:
            os.unlink(path)
            logger.debug("Deleted: %s", path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to delete %s: %s", path, e)


@contextmanager
def temp_artifact(path, transcoder):
    """Yield ``path`` and remove it when the block exits, however it exits."""
    try:
        yield path
    finally:
        transcoder.cleanup(path)
