"""
Cleanup: delete per-attempt audio artifacts after an attempt ends
(success or failure).
"""

import shutil
import logging
import uuid
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

# Subdirectories of an attempt workspace
SOURCE_DIR = "source"
CHUNKS_DIR = "chunks"


def create_attempt_workspace(work_dir: Path, job_id: str, attempt_number: int) -> Path:
    """Fresh directory owned exclusively by one attempt."""
    workspace = Path(work_dir) / job_id / f"attempt_{attempt_number}_{uuid.uuid4().hex[:8]}"
    (workspace / SOURCE_DIR).mkdir(parents=True, exist_ok=True)
    (workspace / CHUNKS_DIR).mkdir(parents=True, exist_ok=True)
    return workspace


def cleanup_job_artifacts(job_workspace: Path, keep_debug: bool = False):
    """
    Delete attempt artifacts.

    Deletes: source/ and the audio in chunks/.
    If keep_debug is True: preserves chunks/manifest.json.
    """
    if not job_workspace.exists():
        return

    source_dir = job_workspace / SOURCE_DIR
    if source_dir.exists():
        try:
            shutil.rmtree(source_dir)
            logger.debug("Deleted: %s", source_dir)
        except OSError as e:
            logger.warning("Failed to delete %s: %s", source_dir, e)

    chunks_dir = job_workspace / CHUNKS_DIR
    if keep_debug and chunks_dir.exists():
        for item in chunks_dir.iterdir():
            if item.name == "manifest.json":
                continue
            try:
                item.unlink()
            except OSError as e:
                logger.warning("Failed to delete %s: %s", item, e)
        return

    try:
        shutil.rmtree(job_workspace)
        logger.debug("Removed workspace: %s", job_workspace)
    except OSError as e:
        logger.warning("Failed to remove workspace %s: %s", job_workspace, e)

    # Drop the per-job parent once its last attempt is gone
    parent = job_workspace.parent
    try:
        if parent.exists() and not any(parent.iterdir()):
            parent.rmdir()
    except OSError:
        pass


@contextmanager
def attempt_workspace(work_dir: Path, job_id: str, attempt_number: int, keep_debug: bool = False):
    """Workspace for one attempt, removed on every exit path."""
    workspace = create_attempt_workspace(work_dir, job_id, attempt_number)
    try:
        yield workspace
    finally:
        cleanup_job_artifacts(workspace, keep_debug)
