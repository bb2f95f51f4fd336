"""
Shared constants for RecScribe.
Single source of truth, imported by every other module.
"""

import os
import pathlib

# ── Application identity ──────────────────────────────────────────────
APP_NAME = "RecScribe"
APP_VERSION = "1.0.0"

# ── Filesystem paths ─────────────────────────────────────────────────
HOME = pathlib.Path.home()

APP_CONFIG_DIR = HOME / ".config" / "recscribe"
APP_STATE_DIR = HOME / ".local" / "state" / "recscribe"
CONFIG_PATH = APP_CONFIG_DIR / "config.json"
DB_PATH = APP_STATE_DIR / "recscribe.db"
LOG_DIR = APP_STATE_DIR / "logs"
DEFAULT_STORAGE_ROOT = APP_STATE_DIR / "storage"
DEFAULT_WORK_DIR = APP_STATE_DIR / "work"

# ── External tools ───────────────────────────────────────────────────
FFMPEG_BIN = os.environ.get("FFMPEG_PATH") or "ffmpeg"
FFPROBE_BIN = os.environ.get("FFPROBE_PATH") or "ffprobe"

# ── Recording status values ──────────────────────────────────────────
class RecordingStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

# ── Queue job status values ──────────────────────────────────────────
class JobStatus:
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

# ── Job stage values (ordered) ────────────────────────────────────────
class JobStage:
    RECEIVED = "RECEIVED"
    DOWNLOADING = "DOWNLOADING"
    PROBING = "PROBING"
    CONVERTING = "CONVERTING"
    CREDIT_CHECKED = "CREDIT_CHECKED"
    TRANSCRIBING = "TRANSCRIBING"
    STORING = "STORING"
    MERGING = "MERGING"
    ANALYZING = "ANALYZING"
    PERSISTING = "PERSISTING"
    CLEANUP = "CLEANUP"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

# ── Error codes ───────────────────────────────────────────────────────
class ErrorCode:
    # Non-retryable
    RECORDING_NOT_FOUND = "ERR_RECORDING_NOT_FOUND"
    SOURCE_MISSING = "ERR_SOURCE_MISSING"
    ACCOUNT_NOT_FOUND = "ERR_ACCOUNT_NOT_FOUND"
    INSUFFICIENT_CREDITS = "ERR_INSUFFICIENT_CREDITS"
    EMPTY_TRANSCRIPTION = "ERR_EMPTY_TRANSCRIPTION"
    PROVIDER_CLIENT = "ERR_PROVIDER_CLIENT"
    PROVIDER_BAD_RESPONSE = "ERR_PROVIDER_BAD_RESPONSE"
    API_KEY_MISSING = "ERR_API_KEY_MISSING"
    FFPROBE = "ERR_FFPROBE"
    FFMPEG_CONVERT = "ERR_FFMPEG_CONVERT"
    FFMPEG_SPEEDUP = "ERR_FFMPEG_SPEEDUP"
    CHUNKING = "ERR_CHUNKING"
    STORAGE_PATH = "ERR_STORAGE_PATH"

    # Retryable
    PROVIDER_TIMEOUT = "ERR_PROVIDER_TIMEOUT"
    PROVIDER_RATE_LIMITED = "ERR_PROVIDER_RATE_LIMITED"
    PROVIDER_SERVER = "ERR_PROVIDER_SERVER"
    NETWORK_TRANSIENT = "ERR_NETWORK_TRANSIENT"
    FFMPEG_TIMEOUT = "ERR_FFMPEG_TIMEOUT"
    STORAGE_IO = "ERR_STORAGE_IO"
    UNEXPECTED = "ERR_UNEXPECTED"

RETRYABLE_ERRORS = {
    ErrorCode.PROVIDER_TIMEOUT,
    ErrorCode.PROVIDER_RATE_LIMITED,
    ErrorCode.PROVIDER_SERVER,
    ErrorCode.NETWORK_TRANSIENT,
    ErrorCode.FFMPEG_TIMEOUT,
    ErrorCode.STORAGE_IO,
    ErrorCode.UNEXPECTED,
}

# ── Audio pipeline defaults ───────────────────────────────────────────
CHUNK_SECONDS = 3600                 # 60 minutes
CHUNK_OVERLAP_SEC = 5
MIN_DURATION_FOR_CHUNKING = 3600     # 60 minutes
SPEED_FACTOR = 1.5
MAX_ATTEMPTS = 3

# atempo accepts 0.5 to 2.0 per filter stage
ATEMPO_MIN = 0.5
ATEMPO_MAX = 2.0

# Storage format for converted recordings
CONVERTED_EXT = ".m4a"
CONVERTED_MIME = "audio/mp4"

class ConvertProfile:
    VOICE = "voice"
    MUSIC = "music"

CONVERT_PROFILES = {
    ConvertProfile.VOICE: {"channels": 1, "sample_rate": 44100, "bitrate": "64k"},
    ConvertProfile.MUSIC: {"channels": 2, "sample_rate": 44100, "bitrate": "128k"},
}

# ── Credits ───────────────────────────────────────────────────────────
SECONDS_PER_CREDIT = 60
MIN_CREDITS_PER_RECORDING = 1

class CreditTransactionType:
    USAGE = "usage"

# ── Progress mapping ─────────────────────────────────────────────────
PROGRESS_START = 0
PROGRESS_DOWNLOAD_START = 1
PROGRESS_DOWNLOAD = 2
PROGRESS_PROBE = 3
PROGRESS_CREDIT_CHECK = 5
PROGRESS_RESUMED = 12
PROGRESS_TRANSCRIBE_START = 15
PROGRESS_TRANSCRIBE_END = 70
PROGRESS_STORE = 72
PROGRESS_MERGE = 74
PROGRESS_ANALYZE_START = 75
PROGRESS_ANALYZE_END = 92
PROGRESS_PERSIST = 94
PROGRESS_CLEANUP = 96
PROGRESS_DONE = 100

PROGRESS_TICK_SEC = 1.0
PROGRESS_TICK_FRACTION = 0.08

# ── Mistral ───────────────────────────────────────────────────────────
MISTRAL_API_BASE = "https://api.mistral.ai/v1"
MISTRAL_TRANSCRIBE_MODEL = "voxtral-mini-latest"
MISTRAL_ANALYSIS_MODEL = "mistral-large-latest"
MISTRAL_SPEAKER_MODEL = "mistral-small-latest"
API_KEY_ENV = "MISTRAL_API_KEY"

DEFAULT_LOCALE = "fr"

# Characters forbidden in stored file names
UNSAFE_FILENAME_CHARS = r'[<>:"/\\|?*\x00-\x1f]'
MAX_FILENAME_LEN = 200
