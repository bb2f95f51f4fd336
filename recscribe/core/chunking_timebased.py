"""
Time-based audio chunking.
Chunks only when duration reaches the configured threshold; consecutive
chunks overlap by a fixed window so words cut at a boundary are kept.
"""

import json
import logging
from pathlib import Path

from recscribe.core.config import ChunkSettings
from recscribe.core.error_codes import JobError
from recscribe.core.constants import ErrorCode, CONVERTED_EXT
from recscribe.core.models import ChunkDescriptor

logger = logging.getLogger(__name__)


def needs_chunking(duration_sec: float, settings: ChunkSettings) -> bool:
    """Check if audio needs chunking based on duration."""
    return duration_sec >= settings.min_duration_for_chunking


def chunk_file_name(idx: int) -> str:
    return f"chunk_{idx:03d}{CONVERTED_EXT}"


def plan_chunks(source_path, duration_sec: float, settings: ChunkSettings,
                chunks_dir: Path | None = None) -> list[ChunkDescriptor]:
    """
    Produce the ordered chunk plan for a recording.

    Below the threshold the plan is a single chunk [0, D) pointing at the
    source file itself. Otherwise each chunk spans chunk_seconds + overlap
    (the last one whatever remains) and the start advances by chunk_seconds,
    so neighbours share exactly overlap_seconds.
    """
    if duration_sec <= 0:
        raise JobError(ErrorCode.CHUNKING, f"Cannot plan chunks for duration {duration_sec}")

    if not needs_chunking(duration_sec, settings):
        return [ChunkDescriptor(index=0, path=str(source_path), start_time=0.0,
                                duration=float(duration_sec))]

    if settings.chunk_seconds <= 0:
        raise JobError(ErrorCode.CHUNKING, f"Invalid chunk length {settings.chunk_seconds}")

    chunks_dir = Path(chunks_dir) if chunks_dir else Path(source_path).parent / "chunks"
    chunks = []
    idx = 0
    start = 0.0

    while start < duration_sec:
        is_last = start + settings.chunk_seconds >= duration_sec
        if is_last:
            length = duration_sec - start
        else:
            length = settings.chunk_seconds + settings.overlap_seconds
        chunks.append(ChunkDescriptor(
            index=idx,
            path=str(chunks_dir / chunk_file_name(idx)),
            start_time=float(start),
            duration=float(length),
        ))
        idx += 1
        start += settings.chunk_seconds

    return chunks


def split_audio_into_chunks(transcoder, source_path, plan: list[ChunkDescriptor],
                            settings: ChunkSettings) -> list[ChunkDescriptor]:
    """
    Physically cut the planned chunks out of ``source_path``.
    A single-chunk plan references the source and is returned untouched.
    Writes manifest.json next to the chunk files.
    """
    if len(plan) == 1 and plan[0].path == str(source_path):
        return plan

    chunks_dir = Path(plan[0].path).parent
    chunks_dir.mkdir(parents=True, exist_ok=True)

    for chunk in plan:
        transcoder.extract_segment(source_path, chunk.path, chunk.start_time, chunk.duration)
        if not Path(chunk.path).exists():
            raise JobError(ErrorCode.CHUNKING, f"Chunk file {chunk.index} not created")

    manifest = {
        'chunking_mode': 'time_based',
        'chunk_seconds': settings.chunk_seconds,
        'overlap_sec': settings.overlap_seconds,
        'chunks': [
            {
                'idx': c.index,
                'file': Path(c.path).name,
                'start_sec': c.start_time,
                'end_sec': c.end_time,
            }
            for c in plan
        ],
    }

    with open(chunks_dir / "manifest.json", 'w') as f:
        json.dump(manifest, f, indent=2)

    logger.info("Created %d chunks in %s", len(plan), chunks_dir)
    return plan
