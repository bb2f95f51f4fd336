"""
Mistral Voxtral speech-to-text integration.
Pre-recorded mode with segment timestamps and speaker diarization.
"""

import logging
import mimetypes
from pathlib import Path

from recscribe.core import mistral_http
from recscribe.core.constants import (
    ErrorCode, MISTRAL_API_BASE, MISTRAL_TRANSCRIBE_MODEL,
)
from recscribe.core.error_codes import ProviderError
from recscribe.core.models import Segment, TranscriptionResult

logger = logging.getLogger(__name__)

_MIN_TIMEOUT_SEC = 120


def request_timeout(duration_hint: float | None, file_size: int) -> int:
    """
    Adaptive timeout: half the audio length plus a minute, or ~1 min per
    10MB when no duration is known; never below 120s.
    """
    if duration_hint and duration_hint > 0:
        estimate = int(duration_hint * 0.5) + 60
    else:
        estimate = int(file_size / (10 * 1024 * 1024) * 60) + 60
    return max(_MIN_TIMEOUT_SEC, estimate)


def parse_transcription_response(data: dict) -> TranscriptionResult:
    """Map a Voxtral transcription response onto a TranscriptionResult."""
    if not isinstance(data, dict):
        raise ProviderError(ErrorCode.PROVIDER_BAD_RESPONSE, "Unexpected transcription payload")

    segments = []
    for seg in data.get('segments') or []:
        try:
            start = float(seg['start'])
            end = float(seg['end'])
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed segment: %r", seg)
            continue
        speaker = seg.get('speaker_id', seg.get('speaker'))
        segments.append(Segment(
            start=start,
            end=end,
            text=(seg.get('text') or '').strip(),
            speaker=str(speaker) if speaker not in (None, '') else None,
        ))

    return TranscriptionResult(
        text=(data.get('text') or '').strip(),
        segments=segments,
        language=data.get('language') or None,
    )


class MistralTranscriber:
    """Speech provider: one transcribe() call per file or chunk."""

    def __init__(self, api_key: str | None, model: str = MISTRAL_TRANSCRIBE_MODEL,
                 api_base: str = MISTRAL_API_BASE, diarize: bool = True):
        self.api_key = api_key
        self.model = model
        self.url = f"{api_base}/audio/transcriptions"
        self.diarize = diarize

    def transcribe(self, path, label: str, duration_hint: float | None = None,
                   mime_type: str | None = None) -> TranscriptionResult:
        """
        Transcribe a local audio file. ``label`` is the file name sent to the
        provider; ``duration_hint`` sizes the request timeout.
        """
        api_key = mistral_http.require_api_key(self.api_key)
        audio_path = Path(path)
        mime_type = mime_type or mimetypes.guess_type(label)[0] or "audio/mpeg"
        timeout_sec = request_timeout(duration_hint, audio_path.stat().st_size)

        form = [
            ("model", self.model),
            ("timestamp_granularities", "segment"),
        ]
        if self.diarize:
            form.append(("diarize", "true"))

        logger.info("Transcribing %s (%s, timeout=%ds)", label, mime_type, timeout_sec)
        with open(audio_path, 'rb') as f:
            data = mistral_http.post(
                self.url, api_key, timeout_sec,
                data=form,
                files={"file": (label, f, mime_type)},
            )

        result = parse_transcription_response(data)
        logger.info("Transcribed %s: %d chars, %d segments, language=%s",
                    label, len(result.text), len(result.segments), result.language)
        return result
