"""
Transcription job queue and its worker thread.
Processes one job attempt at a time; a retryable failure re-queues the job
as a new sequential attempt until its attempt budget is spent.
"""

import logging
import threading
from typing import Callable, Optional

from recscribe.core.constants import JobStatus, JobStage, DEFAULT_LOCALE, PROGRESS_DONE
from recscribe.core.db_sqlite import Database
from recscribe.core.error_codes import JobError, classify_error
from recscribe.core.models import QueuedJob, PipelineResult

logger = logging.getLogger(__name__)


class JobQueueManager:
    """
    Drains queued transcription jobs through the pipeline, one attempt at a time,
    and mirrors stage and progress into the jobs table for observers.
    """

    def __init__(self, db: Database, pipeline, max_attempts: int = 3):
        self.db = db
        self.pipeline = pipeline
        self.max_attempts = max_attempts
        self._worker_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._stop_after_current = threading.Event()
        self._running = False
        self._current_job_id: Optional[str] = None

        # Callbacks
        self.on_job_updated: Optional[Callable[[QueuedJob], None]] = None
        self.on_queue_empty: Optional[Callable[[], None]] = None

        services = pipeline.services
        if services.progress_sink is None:
            services.progress_sink = self._write_progress
        if services.stage_sink is None:
            services.stage_sink = self._write_stage

    # ── Queue management ──────────────────────────────────────────────

    def enqueue_recording(self, recording_id: str, user_id: str, org_id: str,
                          source_path: str, file_name: str, prompt: str | None = None,
                          locale: str = DEFAULT_LOCALE) -> QueuedJob | None:
        """Queue a recording for transcription. Returns None if one is already in flight."""
        if self.db.has_active_job(recording_id):
            logger.info("Recording %s already has an active job, not queuing", recording_id)
            return None

        job = self.db.create_job(
            recording_id=recording_id,
            user_id=user_id,
            org_id=org_id,
            source_path=source_path,
            file_name=file_name,
            prompt=prompt,
            locale=locale,
            max_attempts=self.max_attempts,
        )
        self.db.update_recording(recording_id, current_job_id=job.id)
        logger.info("Queued job %s for recording %s", job.id, recording_id)
        return job

    def start_processing(self):
        """Drain the queue on a background thread."""
        if self._running:
            return
        self._stop_event.clear()
        self._stop_after_current.clear()
        self._running = True
        self._worker_thread = threading.Thread(target=self._worker_loop, daemon=True)
        self._worker_thread.start()

    def stop_processing(self):
        """Stop before the next job starts. A running attempt is never interrupted."""
        self._stop_event.set()
        self._running = False

    def stop_after_current(self):
        """Let the running attempt finish, then stop draining."""
        self._stop_after_current.set()

    def is_running(self) -> bool:
        return self._running

    def wait(self, timeout: float | None = None):
        if self._worker_thread is not None:
            self._worker_thread.join(timeout)

    def retry_job(self, job_id: str):
        """Reset a failed job to QUEUED with a fresh attempt budget."""
        job = self.db.get_job(job_id)
        if job and job.status == JobStatus.FAILED:
            self.db.update_job(job_id,
                               status=JobStatus.QUEUED,
                               stage=None,
                               progress_pct=0,
                               attempt_number=1,
                               error_code=None,
                               error_message=None,
                               retryable=0,
                               completed_at=None)
            self.db.update_recording(job.recording_id, current_job_id=job_id)
            self._notify_job_updated(job_id)

    def remove_job(self, job_id: str):
        """Remove a job that is not currently running, releasing its recording."""
        if job_id == self._current_job_id:
            logger.warning("Refusing to remove running job %s", job_id)
            return
        job = self.db.get_job(job_id)
        self.db.delete_job(job_id)
        if job:
            recording = self.db.get_recording(job.recording_id)
            if recording and recording.current_job_id == job_id:
                self.db.update_recording(job.recording_id, current_job_id=None)

    # ── Worker loop ───────────────────────────────────────────────────

    def _worker_loop(self):
        """Main worker loop: processes one job at a time."""
        try:
            self.run_pending()
        except Exception as e:
            logger.error("Worker loop error: %s", e, exc_info=True)
        finally:
            self._running = False
            self._current_job_id = None

    def run_pending(self) -> int:
        """Process queued jobs until the queue is empty or a stop is requested."""
        processed = 0
        while not self._stop_event.is_set():
            if self._stop_after_current.is_set():
                break

            queued = self.db.get_queued_jobs()
            if not queued:
                if self.on_queue_empty:
                    self.on_queue_empty()
                break

            job = queued[0]
            self._current_job_id = job.id
            self._process_job(job)
            self._current_job_id = None
            processed += 1
        return processed

    def _notify_job_updated(self, job_id: str):
        """Notify observers of a job update."""
        if self.on_job_updated:
            job = self.db.get_job(job_id)
            if job:
                self.on_job_updated(job)

    def _write_progress(self, job_id: str, percent: int):
        self.db.update_job(job_id, progress_pct=percent)
        self._notify_job_updated(job_id)

    def _write_stage(self, job_id: str, stage: str):
        self.db.update_job(job_id, stage=stage)

    # ── Job processing ────────────────────────────────────────────────

    def _process_job(self, queued: QueuedJob) -> PipelineResult | None:
        """Run one attempt of a queued job through the pipeline."""
        job_id = queued.id
        self.db.update_job_status(job_id, JobStatus.RUNNING,
                                  stage=JobStage.RECEIVED, progress_pct=0)
        self._notify_job_updated(job_id)

        try:
            result = self.pipeline.process(queued.to_job())
        except JobError as e:
            self._handle_job_error(queued, e)
            return None
        except Exception as e:
            logger.error("Unexpected error processing job %s: %s", job_id, e, exc_info=True)
            self._handle_job_error(queued, classify_error(e))
            return None

        self.db.update_job_status(job_id, JobStatus.COMPLETED,
                                  stage=JobStage.COMPLETED,
                                  progress_pct=PROGRESS_DONE)
        self._notify_job_updated(job_id)
        return result

    def _handle_job_error(self, queued: QueuedJob, error: JobError):
        """Handle a JobError: queue another attempt or fail for good."""
        if error.retryable and queued.attempt_number < queued.max_attempts:
            logger.info("Re-queuing job %s for attempt %d/%d after %s",
                        queued.id, queued.attempt_number + 1, queued.max_attempts, error.code)
            self.db.update_job(queued.id,
                               attempt_number=queued.attempt_number + 1,
                               status=JobStatus.QUEUED,
                               stage=None,
                               progress_pct=0,
                               error_code=error.code,
                               error_message=error.message[:2000],
                               retryable=1)
        else:
            self.db.update_job_status(
                queued.id, JobStatus.FAILED,
                error_code=error.code,
                error_message=error.message[:2000],
                retryable=1 if error.retryable else 0,
            )
        self._notify_job_updated(queued.id)
