"""
SQLite database layer for RecScribe.
Thread-safe via check_same_thread=False + explicit locking.

Holds the recordings and transcripts the pipeline mutates, the credit
ledger tables and the queue runner's jobs table.
"""

import json
import sqlite3
import threading
import uuid
import logging
from datetime import datetime, timezone
from pathlib import Path

from recscribe.core.constants import (
    DB_PATH, JobStatus, CreditTransactionType, DEFAULT_LOCALE,
)
from recscribe.core.models import QueuedJob, Recording, Segment, TranscriptRecord

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS recordings (
    id TEXT PRIMARY KEY,
    user_id TEXT,
    org_id TEXT,
    file_name TEXT,
    file_path TEXT NOT NULL,
    file_size INTEGER,
    mime_type TEXT,
    duration REAL,
    status TEXT NOT NULL DEFAULT 'pending',
    current_job_id TEXT,
    error_message TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS transcripts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    recording_id TEXT NOT NULL UNIQUE,
    raw_text TEXT NOT NULL,
    segments TEXT,
    language TEXT,
    analysis TEXT,
    created_at TEXT,
    FOREIGN KEY (recording_id) REFERENCES recordings(id)
);

CREATE TABLE IF NOT EXISTS credit_balances (
    user_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    balance REAL NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, org_id)
);

CREATE TABLE IF NOT EXISTS credit_transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    recording_id TEXT,
    type TEXT NOT NULL,
    amount REAL NOT NULL,
    description TEXT,
    created_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_credit_tx_recording ON credit_transactions(recording_id, type);

CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    recording_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    org_id TEXT NOT NULL,
    source_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    prompt TEXT,
    locale TEXT,
    status TEXT NOT NULL DEFAULT 'QUEUED',
    stage TEXT,
    progress_pct INTEGER DEFAULT 0,
    attempt_number INTEGER DEFAULT 1,
    max_attempts INTEGER DEFAULT 3,
    error_code TEXT,
    error_message TEXT,
    retryable INTEGER DEFAULT 0,
    created_at TEXT,
    updated_at TEXT,
    completed_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_jobs_created_at ON jobs(created_at DESC);
CREATE INDEX IF NOT EXISTS idx_jobs_recording_id ON jobs(recording_id);
"""


class Database:
    """SQLite database wrapper for RecScribe."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.RLock()
        self._ensure_dirs()
        self.conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
        )
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._migrate()

    def _ensure_dirs(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _migrate(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(_CREATE_TABLES)
            # Set schema version
            cur.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (_SCHEMA_VERSION,),
            )
            self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    # ── Helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> QueuedJob:
        return QueuedJob(**dict(row))

    @staticmethod
    def _row_to_recording(row: sqlite3.Row) -> Recording:
        return Recording(**dict(row))

    def _update(self, table: str, key: str, key_value, fields: dict):
        sets = ', '.join(f"{k} = ?" for k in fields)
        vals = list(fields.values()) + [key_value]
        with self._lock:
            self.conn.execute(f"UPDATE {table} SET {sets} WHERE {key} = ?", vals)
            self.conn.commit()

    # ── Recording CRUD ────────────────────────────────────────────────

    def create_recording(self, file_path: str, user_id: str | None = None,
                         org_id: str | None = None, file_name: str | None = None,
                         recording_id: str | None = None) -> Recording:
        now = self._now()
        recording = Recording(
            id=recording_id or str(uuid.uuid4()),
            file_path=file_path,
            user_id=user_id,
            org_id=org_id,
            file_name=file_name,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.conn.execute(
                """INSERT INTO recordings
                   (id, user_id, org_id, file_name, file_path, status,
                    created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (recording.id, recording.user_id, recording.org_id,
                 recording.file_name, recording.file_path, recording.status,
                 recording.created_at, recording.updated_at),
            )
            self.conn.commit()
        return recording

    def get_recording(self, recording_id: str) -> Recording | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM recordings WHERE id = ?", (recording_id,)
            ).fetchone()
        return self._row_to_recording(row) if row else None

    def update_recording(self, recording_id: str, **kwargs):
        kwargs['updated_at'] = self._now()
        self._update("recordings", "id", recording_id, kwargs)

    # ── Transcripts ───────────────────────────────────────────────────

    def save_transcript(self, record: TranscriptRecord):
        with self._lock:
            self.conn.execute(
                """INSERT INTO transcripts
                   (recording_id, raw_text, segments, language, analysis, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(recording_id) DO UPDATE SET
                       raw_text = excluded.raw_text,
                       segments = excluded.segments,
                       language = excluded.language,
                       analysis = excluded.analysis""",
                (record.recording_id, record.text,
                 json.dumps(record.segments_as_dicts()),
                 record.language, record.analysis, self._now()),
            )
            self.conn.commit()

    def get_transcript(self, recording_id: str) -> TranscriptRecord | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM transcripts WHERE recording_id = ?", (recording_id,)
            ).fetchone()
        if not row:
            return None
        segments = [Segment.from_dict(s) for s in json.loads(row['segments'] or '[]')]
        return TranscriptRecord(
            recording_id=row['recording_id'],
            text=row['raw_text'],
            segments=segments,
            language=row['language'] or DEFAULT_LOCALE,
            analysis=row['analysis'],
        )

    # ── Credits ───────────────────────────────────────────────────────

    def set_balance(self, user_id: str, org_id: str, balance: float):
        with self._lock:
            self.conn.execute(
                """INSERT INTO credit_balances (user_id, org_id, balance) VALUES (?, ?, ?)
                   ON CONFLICT(user_id, org_id) DO UPDATE SET balance = excluded.balance""",
                (user_id, org_id, balance),
            )
            self.conn.commit()

    def get_balance(self, user_id: str, org_id: str) -> float | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT balance FROM credit_balances WHERE user_id = ? AND org_id = ?",
                (user_id, org_id),
            ).fetchone()
        return row['balance'] if row else None

    def deduct_credits(self, user_id: str, org_id: str, amount: float,
                       description: str, recording_id: str | None):
        """Debit the balance and record the usage transaction in one commit."""
        with self._lock:
            try:
                self.conn.execute(
                    "UPDATE credit_balances SET balance = balance - ? WHERE user_id = ? AND org_id = ?",
                    (amount, user_id, org_id),
                )
                self.conn.execute(
                    """INSERT INTO credit_transactions
                       (id, user_id, org_id, recording_id, type, amount, description, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                    (str(uuid.uuid4()), user_id, org_id, recording_id,
                     CreditTransactionType.USAGE, -amount, description, self._now()),
                )
                self.conn.commit()
            except sqlite3.Error:
                self.conn.rollback()
                raise

    def has_transaction(self, recording_id: str, tx_type: str) -> bool:
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM credit_transactions WHERE recording_id = ? AND type = ? LIMIT 1",
                (recording_id, tx_type),
            ).fetchone()
        return row is not None

    def count_transactions(self, recording_id: str, tx_type: str) -> int:
        with self._lock:
            row = self.conn.execute(
                "SELECT COUNT(*) AS n FROM credit_transactions WHERE recording_id = ? AND type = ?",
                (recording_id, tx_type),
            ).fetchone()
        return row['n']

    # ── Job CRUD ──────────────────────────────────────────────────────

    def create_job(self, recording_id: str, user_id: str, org_id: str,
                   source_path: str, file_name: str, prompt: str | None = None,
                   locale: str = DEFAULT_LOCALE, max_attempts: int = 3) -> QueuedJob:
        now = self._now()
        job = QueuedJob(
            id=str(uuid.uuid4()),
            recording_id=recording_id,
            user_id=user_id,
            org_id=org_id,
            source_path=source_path,
            file_name=file_name,
            prompt=prompt,
            locale=locale,
            max_attempts=max_attempts,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            self.conn.execute(
                """INSERT INTO jobs
                   (id, recording_id, user_id, org_id, source_path, file_name,
                    prompt, locale, status, progress_pct, attempt_number,
                    max_attempts, retryable, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (job.id, job.recording_id, job.user_id, job.org_id,
                 job.source_path, job.file_name, job.prompt, job.locale,
                 job.status, job.progress_pct, job.attempt_number,
                 job.max_attempts, job.retryable, job.created_at, job.updated_at),
            )
            self.conn.commit()
        return job

    def get_job(self, job_id: str) -> QueuedJob | None:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM jobs WHERE id = ?", (job_id,)
            ).fetchone()
        return self._row_to_job(row) if row else None

    def get_queued_jobs(self) -> list[QueuedJob]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM jobs WHERE status = ? ORDER BY created_at ASC",
                (JobStatus.QUEUED,),
            ).fetchall()
        return [self._row_to_job(r) for r in rows]

    def update_job(self, job_id: str, **kwargs):
        kwargs['updated_at'] = self._now()
        self._update("jobs", "id", job_id, kwargs)

    def update_job_status(self, job_id: str, status: str, stage: str | None = None,
                          progress_pct: int | None = None, **extra):
        fields = {'status': status}
        if stage is not None:
            fields['stage'] = stage
        if progress_pct is not None:
            fields['progress_pct'] = progress_pct
        if status in (JobStatus.COMPLETED, JobStatus.FAILED):
            fields['completed_at'] = self._now()
        fields.update(extra)
        self.update_job(job_id, **fields)

    def delete_job(self, job_id: str):
        with self._lock:
            self.conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            self.conn.commit()

    def has_active_job(self, recording_id: str) -> bool:
        with self._lock:
            row = self.conn.execute(
                "SELECT 1 FROM jobs WHERE recording_id = ? AND status IN (?, ?) LIMIT 1",
                (recording_id, JobStatus.QUEUED, JobStatus.RUNNING),
            ).fetchone()
        return row is not None

