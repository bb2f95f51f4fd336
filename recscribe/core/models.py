"""
Data models (plain dataclasses) for RecScribe.
"""

from dataclasses import dataclass, field, asdict
from typing import Optional

from recscribe.core.constants import (
    RecordingStatus, JobStatus, DEFAULT_LOCALE, MAX_ATTEMPTS,
)


@dataclass
class Job:
    """One attempt's view of a transcription job. Immutable except attempt_number."""
    id: str                          # UUID
    recording_id: str
    user_id: str
    org_id: str
    source_path: str
    file_name: str
    prompt: Optional[str] = None
    locale: str = DEFAULT_LOCALE
    attempt_number: int = 1
    max_attempts: int = MAX_ATTEMPTS


@dataclass
class Recording:
    id: str
    file_path: str
    status: str = RecordingStatus.PENDING
    duration: Optional[float] = None
    current_job_id: Optional[str] = None
    error_message: Optional[str] = None
    user_id: Optional[str] = None
    org_id: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class ChunkDescriptor:
    index: int
    path: str
    start_time: float
    duration: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


@dataclass
class Segment:
    start: float                     # seconds
    end: float                       # seconds
    text: str
    speaker: Optional[str] = None

    def to_dict(self) -> dict:
        data = {'start': self.start, 'end': self.end, 'text': self.text}
        if self.speaker:
            data['speaker'] = self.speaker
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Segment":
        return cls(
            start=float(data['start']),
            end=float(data['end']),
            text=data.get('text', ''),
            speaker=data.get('speaker'),
        )


@dataclass
class TranscriptionResult:
    text: str
    segments: list[Segment] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class AnalysisResult:
    analysis: Optional[str]
    speaker_names: dict[str, str] = field(default_factory=dict)


@dataclass
class MergeState:
    """Left fold accumulator over ordered chunk results. Never persisted."""
    last_end_time: float = 0.0
    segments: list[Segment] = field(default_factory=list)
    text: str = ""
    language: Optional[str] = None


@dataclass
class ConversionResult:
    path: str
    duration: float


@dataclass
class StoredFile:
    path: str
    size: int
    mime_type: str


@dataclass
class TranscriptRecord:
    recording_id: str
    text: str
    segments: list[Segment]
    language: str
    analysis: Optional[str] = None

    def segments_as_dicts(self) -> list[dict]:
        return [s.to_dict() for s in self.segments]


@dataclass
class PipelineResult:
    transcript: str
    analysis: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass
class QueuedJob:
    """Row of the queue runner's jobs table."""
    id: str                          # UUID
    recording_id: str
    user_id: str
    org_id: str
    source_path: str
    file_name: str
    prompt: Optional[str] = None
    locale: str = DEFAULT_LOCALE
    status: str = JobStatus.QUEUED
    stage: Optional[str] = None
    progress_pct: int = 0
    attempt_number: int = 1
    max_attempts: int = MAX_ATTEMPTS
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    retryable: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    completed_at: Optional[str] = None

    def to_job(self) -> Job:
        return Job(
            id=self.id,
            recording_id=self.recording_id,
            user_id=self.user_id,
            org_id=self.org_id,
            source_path=self.source_path,
            file_name=self.file_name,
            prompt=self.prompt,
            locale=self.locale,
            attempt_number=self.attempt_number,
            max_attempts=self.max_attempts,
        )
