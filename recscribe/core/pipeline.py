"""
Transcription pipeline: one job attempt from uploaded recording to stored
transcript.

Stages: RECEIVED -> DOWNLOADING -> PROBING -> CREDIT_CHECKED ->
{CONVERTING || TRANSCRIBING} -> STORING -> MERGING -> ANALYZING ->
PERSISTING -> COMPLETED, or FAILED with a classified JobError.

An attempt never repeats finished expensive work: when the recording's
file_path no longer matches the job's source_path, an earlier attempt has
already converted and stored the file, and this attempt goes straight to
transcription. Credits are charged at most once per recording.
"""

import logging
import mimetypes
import uuid
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from recscribe.core.analysis import run_analysis
from recscribe.core.chunk_transcriber import transcribe_chunks
from recscribe.core.chunking_timebased import plan_chunks, split_audio_into_chunks
from recscribe.core.cleanup import attempt_workspace, SOURCE_DIR, CHUNKS_DIR
from recscribe.core.config import AppConfig
from recscribe.core.constants import (
    ErrorCode, JobStage, RecordingStatus, CONVERTED_EXT, CONVERTED_MIME,
    PROGRESS_START, PROGRESS_DOWNLOAD_START, PROGRESS_DOWNLOAD, PROGRESS_PROBE,
    PROGRESS_CREDIT_CHECK, PROGRESS_RESUMED, PROGRESS_STORE, PROGRESS_MERGE,
    PROGRESS_ANALYZE_START, PROGRESS_ANALYZE_END, PROGRESS_PERSIST,
    PROGRESS_CLEANUP, PROGRESS_DONE,
)
from recscribe.core.credits import CreditGate
from recscribe.core.error_codes import JobError, classify_error, is_final_attempt
from recscribe.core.media import temp_artifact
from recscribe.core.merge import fold_chunk_results, finalize_segments
from recscribe.core.models import (
    Job, Recording, PipelineResult, TranscriptRecord, ConversionResult,
)
from recscribe.core.progress import ProgressReporter, ProgressSink
from recscribe.core.security_utils import sanitize_file_name, replace_extension

logger = logging.getLogger(__name__)


@dataclass
class PipelineServices:
    """Collaborators injected into the pipeline."""
    storage: Any            # get_bytes / put / delete
    transcoder: Any         # probe_duration / convert / speed_up / extract_segment / cleanup
    speech: Any             # transcribe
    analyzer: Any           # analyze / identify_speakers
    ledger: Any             # has_enough_credits / effective_balance / charge_usage / find_usage_charge
    recordings: Any         # get_recording / update_recording / save_transcript
    progress_sink: Optional[ProgressSink] = None
    stage_sink: Optional[Callable[[str, str], None]] = None


@dataclass
class _BranchResult:
    results: list
    chunks: list
    speed_factor: float


class TranscriptionPipeline:
    """Job controller for a single attempt of a transcription job."""

    def __init__(self, services: PipelineServices, config: AppConfig):
        self.services = services
        self.config = config
        self.credit_gate = CreditGate(services.ledger)

    # ── Entry point ───────────────────────────────────────────────────

    def process(self, job: Job) -> PipelineResult:
        """
        Run one attempt. Returns the transcript and analysis, or raises a
        classified JobError after recording the failure.
        """
        recording = self._start_attempt(job)
        progress = ProgressReporter(
            self.services.progress_sink, job.id,
            tick_sec=self.config.get('progress_tick_sec'),
            tick_fraction=self.config.get('progress_tick_fraction'),
        )
        progress.report(PROGRESS_START)

        try:
            with attempt_workspace(self.config.work_dir, job.id, job.attempt_number,
                                   self.config.keep_debug_artifacts) as workspace:
                result = self._run(job, recording, workspace, progress)
        except Exception as exc:
            error = classify_error(exc)
            self._fail_attempt(job, error)
            if error is exc:
                raise
            raise error from exc

        progress.report(PROGRESS_DONE)
        self._stage(job, JobStage.COMPLETED)
        logger.info("Job %s completed (attempt %d)", job.id, job.attempt_number)
        return result

    # ── Attempt bookkeeping ───────────────────────────────────────────

    def _stage(self, job: Job, stage: str):
        logger.info("Job %s: %s", job.id, stage)
        if self.services.stage_sink is not None:
            try:
                self.services.stage_sink(job.id, stage)
            except Exception as e:
                logger.debug("Stage write failed for job %s: %s", job.id, e)

    def _start_attempt(self, job: Job) -> Recording:
        self._stage(job, JobStage.RECEIVED)
        recording = self.services.recordings.get_recording(job.recording_id)
        if recording is None:
            raise JobError(ErrorCode.RECORDING_NOT_FOUND,
                           f"Recording {job.recording_id} not found")

        # Restored on retry; an earlier attempt may have left it set or cleared
        self.services.recordings.update_recording(
            recording.id,
            status=RecordingStatus.PROCESSING,
            current_job_id=job.id,
        )
        return recording

    def _fail_attempt(self, job: Job, error: JobError):
        final = not error.retryable or is_final_attempt(job.attempt_number, job.max_attempts)
        fields = {
            'status': RecordingStatus.FAILED,
            'error_message': error.message[:2000],
        }
        # Left set while a retry is pending so observers can tell "will retry" from "stopped"
        if final:
            fields['current_job_id'] = None

        logger.warning("Job %s attempt %d/%d failed (%s, %s): %s",
                       job.id, job.attempt_number, job.max_attempts, error.code,
                       "final" if final else "will retry", error.message)
        try:
            self.services.recordings.update_recording(job.recording_id, **fields)
        except Exception as e:
            logger.error("Could not record failure of job %s: %s", job.id, e, exc_info=True)
        self._stage(job, JobStage.FAILED)

    # ── Pipeline body ─────────────────────────────────────────────────

    def _run(self, job: Job, recording: Recording, workspace: Path,
             progress: ProgressReporter) -> PipelineResult:
        transcoder = self.services.transcoder
        resumed = recording.file_path != job.source_path

        # ── Download ──
        self._stage(job, JobStage.DOWNLOADING)
        progress.report(PROGRESS_DOWNLOAD_START)
        if resumed:
            logger.info("Job %s: recording already converted (%s), skipping conversion",
                        job.id, recording.file_path)
            audio_name = replace_extension(job.file_name, CONVERTED_EXT)
            local_path = self._download(recording.file_path, audio_name, workspace)
        else:
            audio_name = job.file_name
            local_path = self._download(job.source_path, audio_name, workspace)
        progress.report(PROGRESS_DOWNLOAD)

        # ── Duration ──
        self._stage(job, JobStage.PROBING)
        if resumed and recording.duration:
            duration = float(recording.duration)
        else:
            duration = transcoder.probe_duration(local_path)
        progress.report(PROGRESS_PROBE)

        # ── Credits (blocking) ──
        self.credit_gate.ensure_charged(job, duration)
        self._stage(job, JobStage.CREDIT_CHECKED)
        progress.report(PROGRESS_CREDIT_CHECK)

        # ── Convert || transcribe ──
        if resumed:
            progress.report(PROGRESS_RESUMED)
            branch = self._transcribe_branch(job, local_path, audio_name, workspace, progress)
        else:
            branch = self._convert_and_transcribe(job, local_path, audio_name, workspace, progress)
        progress.report(PROGRESS_STORE)

        # ── Merge ──
        self._stage(job, JobStage.MERGING)
        state = fold_chunk_results(branch.results, branch.chunks)
        progress.report(PROGRESS_MERGE)
        if not state.text.strip():
            raise JobError(ErrorCode.EMPTY_TRANSCRIPTION, "Transcription returned empty result")

        # ── Analysis ──
        self._stage(job, JobStage.ANALYZING)
        with progress.track(PROGRESS_ANALYZE_START, PROGRESS_ANALYZE_END):
            analysis, segments = run_analysis(
                self.services.analyzer, state.text, state.segments, job.prompt, job.locale,
            )
        segments = finalize_segments(segments, branch.speed_factor)
        analysis_text = analysis.analysis if analysis and analysis.analysis else None

        # ── Persist ──
        self._stage(job, JobStage.PERSISTING)
        self.services.recordings.save_transcript(TranscriptRecord(
            recording_id=job.recording_id,
            text=state.text,
            segments=segments,
            language=state.language or job.locale,
            analysis=analysis_text,
        ))
        progress.report(PROGRESS_PERSIST)

        self.services.recordings.update_recording(
            job.recording_id,
            status=RecordingStatus.COMPLETED,
            current_job_id=None,
            error_message=None,
        )
        self._stage(job, JobStage.CLEANUP)
        progress.report(PROGRESS_CLEANUP)

        return PipelineResult(transcript=state.text, analysis=analysis_text or "")

    def _download(self, key: str, name: str, workspace: Path) -> Path:
        """Fetch a stored blob into the attempt workspace."""
        data = self.services.storage.get_bytes(key)
        safe_name = sanitize_file_name(name) or "audio"
        local_path = workspace / SOURCE_DIR / f"{uuid.uuid4().hex}-{safe_name}"
        local_path.write_bytes(data)
        logger.debug("Downloaded %s -> %s (%d bytes)", key, local_path, len(data))
        return local_path

    def _convert_and_transcribe(self, job: Job, local_path: Path, audio_name: str,
                                workspace: Path, progress: ProgressReporter) -> _BranchResult:
        """
        Run conversion and transcription side by side and join both.
        A successful conversion is stored even if transcription failed, so a
        retry resumes from the converted file instead of converting again.
        """
        transcoder = self.services.transcoder
        self._stage(job, JobStage.CONVERTING)

        with ThreadPoolExecutor(max_workers=2, thread_name_prefix=f"job-{job.id[:8]}") as pool:
            convert_future = pool.submit(transcoder.convert, local_path, self.config.convert_profile)
            transcribe_future = pool.submit(
                self._transcribe_branch, job, local_path, audio_name, workspace, progress,
            )
            wait([convert_future, transcribe_future])

        convert_error = convert_future.exception()
        transcribe_error = transcribe_future.exception()

        if convert_error is None:
            conversion = convert_future.result()
            with temp_artifact(conversion.path, transcoder):
                try:
                    self._store_converted(job, conversion)
                except Exception:
                    if transcribe_error is not None:
                        logger.error("Job %s: transcription also failed: %s", job.id, transcribe_error)
                    raise

        errors = [e for e in (convert_error, transcribe_error) if e is not None]
        if errors:
            # A terminal failure wins: retrying could not fix it
            terminal = [e for e in errors if not classify_error(e).retryable]
            raise (terminal or errors)[0]

        return transcribe_future.result()

    def _store_converted(self, job: Job, conversion: ConversionResult):
        """Upload the converted file and point the recording at it."""
        self._stage(job, JobStage.STORING)
        stored = self.services.storage.put(
            conversion.path,
            job.org_id,
            {
                'originalName': replace_extension(job.file_name, CONVERTED_EXT),
                'mimeType': CONVERTED_MIME,
            },
        )
        try:
            self.services.recordings.update_recording(
                job.recording_id,
                file_path=stored.path,
                file_size=stored.size,
                mime_type=stored.mime_type,
                duration=round(conversion.duration, 3),
            )
        except Exception:
            # The recording still points at the original; drop the orphaned upload
            try:
                self.services.storage.delete(stored.path)
            except Exception as e:
                logger.warning("Job %s: could not delete orphaned %s: %s", job.id, stored.path, e)
            raise

        try:
            self.services.storage.delete(job.source_path)
        except Exception as e:
            logger.warning("Job %s: could not delete original %s: %s", job.id, job.source_path, e)

    def _transcribe_branch(self, job: Job, audio_path: Path, audio_name: str,
                           workspace: Path, progress: ProgressReporter) -> _BranchResult:
        """Speed up, plan chunks, split, then transcribe chunk by chunk."""
        transcoder = self.services.transcoder
        factor = self.config.speed_factor

        if factor > 1.0:
            sped_path = transcoder.speed_up(audio_path, factor)
            input_ctx = temp_artifact(sped_path, transcoder)
        else:
            factor = 1.0
            input_ctx = nullcontext(audio_path)

        with input_ctx as input_path:
            duration = transcoder.probe_duration(input_path)
            settings = self.config.chunk_settings()
            plan = plan_chunks(input_path, duration, settings, workspace / CHUNKS_DIR)

            reencoded = factor != 1.0 or plan[0].path != str(input_path)
            name = replace_extension(audio_name, CONVERTED_EXT) if reencoded else audio_name
            mime_type = (CONVERTED_MIME if name.endswith(CONVERTED_EXT)
                         else mimetypes.guess_type(name)[0])

            self._stage(job, JobStage.TRANSCRIBING)
            try:
                plan = split_audio_into_chunks(transcoder, input_path, plan, settings)
                results = transcribe_chunks(self.services.speech, plan, name, mime_type, progress)
            finally:
                for chunk in plan:
                    if chunk.path != str(input_path):
                        transcoder.cleanup(chunk.path)

        return _BranchResult(results=results, chunks=plan, speed_factor=factor)
