"""
Merge per-chunk transcription results into a single transcript.
Handles timestamp offsets, overlap deduplication at chunk boundaries and
speaker label disambiguation across chunks.
"""

import logging
import re
from dataclasses import replace

from recscribe.core.models import (
    ChunkDescriptor, MergeState, Segment, TranscriptionResult,
)

logger = logging.getLogger(__name__)

_CHUNK_SUFFIX_RE = re.compile(r'_c\d+$')


def chunk_speaker_label(speaker: str | None, chunk_index: int) -> str | None:
    """Scope a provider speaker id to its chunk: 'speaker_0' -> 'speaker_0_c2'."""
    if not speaker:
        return speaker
    return f"{speaker}_c{chunk_index}"


def strip_chunk_suffix(speaker: str | None) -> str | None:
    if not speaker:
        return speaker
    return _CHUNK_SUFFIX_RE.sub('', speaker)


def _join_text(a: str, b: str) -> str:
    a = (a or '').strip()
    b = (b or '').strip()
    if a and b:
        return f"{a} {b}"
    return a or b


def merge_chunk(state: MergeState, result: TranscriptionResult,
                chunk_index: int, chunk_start: float) -> MergeState:
    """
    Fold one chunk result into the merge state.

    Chunk 0 seeds the state as-is. Later chunks are shifted by their start
    time, get chunk-scoped speaker labels, and lose every segment starting
    before the previous chunk's last accepted end (the overlap window).
    """
    segments = sorted(result.segments, key=lambda s: s.start)

    if chunk_index == 0:
        return MergeState(
            last_end_time=segments[-1].end if segments else 0.0,
            segments=list(segments),
            text=(result.text or '').strip(),
            language=result.language,
        )

    shifted = [
        Segment(
            start=seg.start + chunk_start,
            end=seg.end + chunk_start,
            text=seg.text,
            speaker=chunk_speaker_label(seg.speaker, chunk_index),
        )
        for seg in segments
    ]
    survivors = [seg for seg in shifted if seg.start >= state.last_end_time]

    dropped = len(shifted) - len(survivors)
    if dropped:
        logger.debug("Chunk %d: dropped %d overlapping segment(s)", chunk_index, dropped)

    return MergeState(
        last_end_time=survivors[-1].end if survivors else state.last_end_time,
        segments=state.segments + survivors,
        text=_join_text(state.text, result.text),
        language=state.language or result.language,
    )


def fold_chunk_results(results: list[TranscriptionResult],
                       chunks: list[ChunkDescriptor]) -> MergeState:
    """Fold ordered chunk results left to right."""
    if len(results) != len(chunks):
        raise ValueError(f"Got {len(results)} results for {len(chunks)} chunks")

    state = MergeState()
    for chunk, result in zip(chunks, results):
        state = merge_chunk(state, result, chunk.index, chunk.start_time)
    return state


def apply_speaker_names(segments: list[Segment], names: dict[str, str]) -> list[Segment]:
    """Replace provider speaker ids with human names where a mapping exists."""
    if not names:
        return list(segments)
    return [
        replace(seg, speaker=names[seg.speaker]) if seg.speaker and names.get(seg.speaker) else seg
        for seg in segments
    ]


def finalize_segments(segments: list[Segment], speed_factor: float = 1.0) -> list[Segment]:
    """
    Final normalization once the transcript is assembled: drop chunk suffixes
    from speaker labels and map sped-up timestamps back to the original
    recording's timeline.
    """
    return [
        Segment(
            start=round(seg.start * speed_factor, 3),
            end=round(seg.end * speed_factor, 3),
            text=seg.text,
            speaker=strip_chunk_suffix(seg.speaker),
        )
        for seg in segments
    ]
