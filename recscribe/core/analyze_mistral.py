"""
Mistral chat-completion integration for transcript analysis.
analyze() answers the user's prompt about a transcript and names speakers;
identify_speakers() only names speakers.
"""

import json
import logging

from recscribe.core import mistral_http
from recscribe.core.constants import (
    ErrorCode, MISTRAL_API_BASE, MISTRAL_ANALYSIS_MODEL, MISTRAL_SPEAKER_MODEL,
    DEFAULT_LOCALE,
)
from recscribe.core.error_codes import ProviderError
from recscribe.core.models import AnalysisResult, Segment

logger = logging.getLogger(__name__)

_ANALYZE_TIMEOUT_SEC = 300
_SPEAKERS_TIMEOUT_SEC = 120
# Upper bound on the transcript excerpt sent for speaker naming
_SPEAKER_EXCERPT_CHARS = 12000

_LANGUAGE_NAMES = {
    'fr': 'French',
    'en': 'English',
    'de': 'German',
    'es': 'Spanish',
    'it': 'Italian',
    'nl': 'Dutch',
    'pt': 'Portuguese',
}

_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert assistant analysing audio conversations. "
    "The user provides a transcript and describes what they want from it. "
    "Answer clearly and in a structured way, in {language}. "
    "Reply with a JSON object with two keys: \"analysis\" (markdown string) and "
    "\"speakers\" (object mapping each speaker label found in the transcript to the "
    "person's name when it can be inferred; omit labels you cannot name)."
)

_SPEAKERS_SYSTEM_PROMPT = (
    "You identify speakers in diarized transcripts. Each line starts with a speaker "
    "label in brackets. Reply with a JSON object mapping labels to real names when "
    "the conversation reveals them (introductions, people addressing each other). "
    "Omit labels you cannot name. Never invent names."
)


def language_name(locale: str | None) -> str:
    code = (locale or DEFAULT_LOCALE).split('-')[0].split('_')[0].lower()
    return _LANGUAGE_NAMES.get(code, code)


def render_segments(segments: list[Segment]) -> str:
    """'[speaker] text' lines; unlabeled segments keep their text only."""
    return "\n".join(f"[{seg.speaker}] {seg.text}" if seg.speaker else seg.text
                     for seg in segments)


def speaker_excerpt(segments: list[Segment], limit: int = _SPEAKER_EXCERPT_CHARS) -> str:
    """
    Render labeled lines for speaker naming within ``limit`` characters.

    When the whole transcript does not fit, every label gets an equal share of
    the budget and keeps its earliest lines, so labels that first speak late
    (for example those of later chunks) still reach the model. Lines stay in
    transcript order.
    """
    labeled = [s for s in segments if s.speaker]
    full = render_segments(labeled)
    if len(full) <= limit:
        return full

    labels = list(dict.fromkeys(s.speaker for s in labeled))
    share = max(1, limit // len(labels))
    used = dict.fromkeys(labels, 0)
    lines = []
    for seg in labeled:
        line = f"[{seg.speaker}] {seg.text}"
        if used[seg.speaker] == 0:
            line = line[:share]
        elif used[seg.speaker] + len(line) + 1 > share:
            continue
        used[seg.speaker] += len(line) + 1
        lines.append(line)
    return "\n".join(lines)


def _message_content(data: dict) -> str:
    try:
        content = data['choices'][0]['message']['content']
    except (KeyError, IndexError, TypeError):
        raise ProviderError(ErrorCode.PROVIDER_BAD_RESPONSE, "Chat completion without content")
    return content if isinstance(content, str) else ""


def _parse_json_object(content: str) -> dict:
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        logger.warning("Model reply is not valid JSON (%d chars)", len(content))
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _clean_names(raw, known_labels: set[str]) -> dict[str, str]:
    """Keep only string names for labels that actually occur in the transcript."""
    if not isinstance(raw, dict):
        return {}
    return {
        str(label): name.strip()
        for label, name in raw.items()
        if str(label) in known_labels and isinstance(name, str) and name.strip()
    }


class MistralAnalyzer:
    """Summarization provider backed by Mistral chat completions."""

    def __init__(self, api_key: str | None, api_base: str = MISTRAL_API_BASE,
                 model: str = MISTRAL_ANALYSIS_MODEL,
                 speaker_model: str = MISTRAL_SPEAKER_MODEL):
        self.api_key = api_key
        self.url = f"{api_base}/chat/completions"
        self.model = model
        self.speaker_model = speaker_model

    def _complete(self, model: str, system: str, user: str, timeout: int) -> str:
        api_key = mistral_http.require_api_key(self.api_key)
        data = mistral_http.post(
            self.url, api_key, timeout,
            json={
                "model": model,
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "response_format": {"type": "json_object"},
            },
        )
        return _message_content(data)

    def analyze(self, text: str, prompt: str, segments: list[Segment] | None = None,
                locale: str | None = None) -> AnalysisResult:
        segments = segments or []
        labels = {s.speaker for s in segments if s.speaker}
        transcript = render_segments(segments) if labels else text

        user_message = (
            f"Here is the transcript of the audio:\n\n\"\"\"\n{transcript}\n\"\"\"\n\n"
            f"Here is what the user wants:\n{prompt}"
        )
        content = self._complete(
            self.model,
            _ANALYSIS_SYSTEM_PROMPT.format(language=language_name(locale)),
            user_message,
            _ANALYZE_TIMEOUT_SEC,
        )

        parsed = _parse_json_object(content)
        if not parsed:
            # Model ignored JSON mode: keep the prose as the analysis
            return AnalysisResult(analysis=content.strip(), speaker_names={})

        analysis = parsed.get('analysis')
        if not isinstance(analysis, str):
            analysis = json.dumps(analysis, ensure_ascii=False) if analysis is not None else ""
        return AnalysisResult(
            analysis=analysis.strip(),
            speaker_names=_clean_names(parsed.get('speakers'), labels),
        )

    def identify_speakers(self, segments: list[Segment]) -> dict[str, str]:
        labels = {s.speaker for s in segments if s.speaker}
        if not labels:
            return {}
        content = self._complete(
            self.speaker_model,
            _SPEAKERS_SYSTEM_PROMPT,
            speaker_excerpt(segments),
            _SPEAKERS_TIMEOUT_SEC,
        )
        return _clean_names(_parse_json_object(content), labels)
