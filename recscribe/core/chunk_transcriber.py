"""
Sequential speech-to-text over a chunk plan.
"""

import logging
import os
from contextlib import nullcontext

from recscribe.core.constants import PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_END
from recscribe.core.models import ChunkDescriptor, TranscriptionResult

logger = logging.getLogger(__name__)


def chunk_label(file_name: str, chunk: ChunkDescriptor, total: int) -> str:
    """Name sent to the provider: the file itself, or '<stem>_part<N><ext>'."""
    if total <= 1:
        return file_name
    stem, ext = os.path.splitext(file_name)
    return f"{stem}_part{chunk.index + 1}{ext}"


def transcribe_chunks(speech, chunks: list[ChunkDescriptor], file_name: str,
                      mime_type: str | None = None, progress=None,
                      band: tuple[int, int] = (PROGRESS_TRANSCRIBE_START, PROGRESS_TRANSCRIBE_END),
                      ) -> list[TranscriptionResult]:
    """
    Transcribe every chunk in index order, one provider call at a time.
    Provider errors propagate unchanged; the whole attempt is the retry unit.
    """
    ordered = sorted(chunks, key=lambda c: c.index)
    total = len(ordered)
    low, high = band
    span = high - low
    results = []

    for i, chunk in enumerate(ordered):
        chunk_low = low + (span * i) // total
        chunk_high = low + (span * (i + 1)) // total
        label = chunk_label(file_name, chunk, total)

        logger.info("Transcribing chunk %d/%d (start=%.1fs, duration=%.1fs)",
                    i + 1, total, chunk.start_time, chunk.duration)
        tracker = progress.track(chunk_low, chunk_high) if progress else nullcontext()
        with tracker:
            result = speech.transcribe(chunk.path, label, chunk.duration, mime_type)
        results.append(result)

    return results
