"""
Post-transcription analysis pass.
"""

import logging

from recscribe.core.merge import apply_speaker_names
from recscribe.core.models import AnalysisResult, Segment

logger = logging.getLogger(__name__)


def has_speaker_labels(segments: list[Segment]) -> bool:
    return any(seg.speaker for seg in segments)


def run_analysis(analyzer, text: str, segments: list[Segment], prompt: str | None,
                 locale: str | None = None) -> tuple[AnalysisResult | None, list[Segment]]:
    """
    With a prompt: full analysis plus speaker names. Without one: only
    humanize speaker labels, and only when the transcript has any.
    Returns the analysis (None when nothing was asked) and the relabeled segments.
    """
    if prompt and prompt.strip():
        result = analyzer.analyze(text, prompt, segments, locale=locale)
        logger.info("Analysis done: %d chars, %d speaker name(s)",
                    len(result.analysis or ''), len(result.speaker_names))
        return result, apply_speaker_names(segments, result.speaker_names)

    if has_speaker_labels(segments):
        names = analyzer.identify_speakers(segments)
        logger.info("Identified %d speaker name(s)", len(names))
        return AnalysisResult(analysis=None, speaker_names=names), apply_speaker_names(segments, names)

    return None, segments
