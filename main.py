#!/usr/bin/env python3
"""
RecScribe v1.0.0: main entry point.
Runs the transcription worker over the local job queue.
"""

import argparse
import os
import sys
import logging
import shutil
import traceback
from pathlib import Path
from datetime import datetime

# ── Determine project root ────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from recscribe.core.constants import (  # noqa: E402
    APP_NAME, APP_VERSION, LOG_DIR, FFMPEG_BIN, FFPROBE_BIN, DEFAULT_LOCALE,
)

logger = logging.getLogger("recscribe")


def setup_logging(log_dir: Path, verbose: bool = False) -> Path:
    """Log to <log_dir>/worker.log, and to stderr as well when verbose."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "worker.log"
    handlers = [logging.FileHandler(log_file, encoding="utf-8")]
    if verbose:
        handlers.append(logging.StreamHandler())
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
    return log_file


def check_prerequisites():
    """Check that ffmpeg and ffprobe are available, exit if not."""
    missing = []
    for binary in (FFMPEG_BIN, FFPROBE_BIN):
        if not shutil.which(binary):
            missing.append(binary)

    if missing:
        logger.error("Missing tools: %s. PATH = %s", ", ".join(missing), os.environ.get("PATH", ""))
        print(f"Missing required tools: {', '.join(missing)}", file=sys.stderr)
        sys.exit(1)

    logger.info("ffmpeg found at: %s", shutil.which(FFMPEG_BIN))
    logger.info("ffprobe found at: %s", shutil.which(FFPROBE_BIN))


def build_worker(config):
    """Wire the production collaborators into a queue manager."""
    from recscribe.core.analyze_mistral import MistralAnalyzer
    from recscribe.core.credits import SqliteCreditLedger
    from recscribe.core.db_sqlite import Database
    from recscribe.core.job_queue import JobQueueManager
    from recscribe.core.media import FfmpegTranscoder
    from recscribe.core.pipeline import PipelineServices, TranscriptionPipeline
    from recscribe.core.security_utils import resolve_api_key
    from recscribe.core.storage import LocalFileStorage
    from recscribe.core.transcribe_mistral import MistralTranscriber

    db = Database(config.db_path)
    api_key = resolve_api_key(config)
    services = PipelineServices(
        storage=LocalFileStorage(config.storage_root),
        transcoder=FfmpegTranscoder(config.work_dir / "media"),
        speech=MistralTranscriber(api_key),
        analyzer=MistralAnalyzer(api_key),
        ledger=SqliteCreditLedger(db),
        recordings=db,
    )
    pipeline = TranscriptionPipeline(services, config)
    return JobQueueManager(db, pipeline, max_attempts=config.max_attempts)


def enqueue_files(manager, paths: list[str], user_id: str, org_id: str,
                  prompt: str | None, locale: str):
    """Store local files as recordings and queue a job for each."""
    storage = manager.pipeline.services.storage
    for raw in paths:
        path = Path(raw).expanduser()
        if not path.is_file():
            logger.warning("Skipping %s: not a file", path)
            print(f"Skipping {path}: not a file", file=sys.stderr)
            continue
        stored = storage.put(path, org_id, {'originalName': path.name})
        recording = manager.db.create_recording(
            stored.path, user_id=user_id, org_id=org_id, file_name=path.name,
        )
        manager.db.update_recording(recording.id, file_size=stored.size,
                                    mime_type=stored.mime_type)
        job = manager.enqueue_recording(recording.id, user_id, org_id, stored.path,
                                        path.name, prompt=prompt, locale=locale)
        if job:
            print(f"Queued {path.name}: recording {recording.id}, job {job.id}")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="recscribe", description=f"{APP_NAME} transcription worker")
    parser.add_argument("files", nargs="*", help="audio/video files to queue before processing")
    parser.add_argument("--user", default="local", help="user id owning queued recordings")
    parser.add_argument("--org", default="local", help="organization id owning queued recordings")
    parser.add_argument("--prompt", help="analysis request applied to queued recordings")
    parser.add_argument("--locale", default=DEFAULT_LOCALE, help="transcript language")
    parser.add_argument("--credits", type=float, help="set the user's credit balance first")
    parser.add_argument("--diagnostics", action="store_true", help="print tool diagnostics and exit")
    parser.add_argument("--log-dir", type=Path, default=LOG_DIR)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    setup_logging(args.log_dir, args.verbose)

    logger.info("=" * 60)
    logger.info("%s v%s starting at %s", APP_NAME, APP_VERSION, datetime.now().isoformat())
    logger.info("Python: %s", sys.executable)
    logger.info("Project root: %s", PROJECT_ROOT)
    logger.info("=" * 60)

    from recscribe.core.config import AppConfig
    from recscribe.core.diagnostics import get_diagnostics

    config = AppConfig()
    diagnostics = get_diagnostics(config, verify_key=args.diagnostics)
    logger.info("Diagnostics: %s", diagnostics)
    if args.diagnostics:
        for key, value in diagnostics.items():
            print(f"{key}: {value}")
        return 0

    try:
        check_prerequisites()
        if not diagnostics["api_key_configured"]:
            logger.warning("No Mistral API key configured; provider calls will fail")

        manager = build_worker(config)
        if args.credits is not None:
            manager.db.set_balance(args.user, args.org, args.credits)
        enqueue_files(manager, args.files, args.user, args.org, args.prompt, args.locale)

        manager.on_job_updated = lambda job: logger.info(
            "Job %s: %s %s %d%%", job.id, job.status, job.stage or "", job.progress_pct)
        processed = manager.run_pending()
        logger.info("Queue drained, %d attempt(s) processed", processed)
        manager.db.close()
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        logger.critical("Fatal error: %s\n%s", error_msg, traceback.format_exc())
        print(error_msg, file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
