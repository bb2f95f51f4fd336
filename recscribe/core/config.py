"""
Application configuration manager.
Stores settings in a JSON file under the user's config directory.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from recscribe.core.constants import (
    CONFIG_PATH, DB_PATH, DEFAULT_STORAGE_ROOT, DEFAULT_WORK_DIR, DEFAULT_LOCALE,
    CHUNK_SECONDS, CHUNK_OVERLAP_SEC, MIN_DURATION_FOR_CHUNKING,
    SPEED_FACTOR, MAX_ATTEMPTS, ConvertProfile, CONVERT_PROFILES,
    PROGRESS_TICK_SEC, PROGRESS_TICK_FRACTION,
)

# Validation bounds
_CHUNK_SECONDS_MIN = 300          # 5 minutes
_CHUNK_SECONDS_MAX = 7200         # 2 hours
_OVERLAP_MIN = 0
_OVERLAP_MAX = 60
_MIN_CHUNKING_MIN = 300
_MIN_CHUNKING_MAX = 43200         # 12 hours
_SPEED_MIN = 1.0
_SPEED_MAX = 2.0
_ATTEMPTS_MIN = 1
_ATTEMPTS_MAX = 10
_TICK_SEC_MIN = 0.05
_TICK_SEC_MAX = 30.0
_TICK_FRACTION_MIN = 0.01
_TICK_FRACTION_MAX = 0.5

logger = logging.getLogger(__name__)

_DEFAULTS = {
    'storage_root': str(DEFAULT_STORAGE_ROOT),
    'work_dir': str(DEFAULT_WORK_DIR),
    'db_path': str(DB_PATH),
    'chunk_seconds': CHUNK_SECONDS,
    'overlap_seconds': CHUNK_OVERLAP_SEC,
    'min_duration_for_chunking': MIN_DURATION_FOR_CHUNKING,
    'speed_factor': SPEED_FACTOR,
    'max_attempts': MAX_ATTEMPTS,
    'convert_profile': ConvertProfile.VOICE,
    'progress_tick_sec': PROGRESS_TICK_SEC,
    'progress_tick_fraction': PROGRESS_TICK_FRACTION,
    'default_locale': DEFAULT_LOCALE,
    'keep_debug_artifacts': False,
}

# key -> (type, low, high)
_NUMERIC_BOUNDS = {
    'chunk_seconds': (int, _CHUNK_SECONDS_MIN, _CHUNK_SECONDS_MAX),
    'overlap_seconds': (int, _OVERLAP_MIN, _OVERLAP_MAX),
    'min_duration_for_chunking': (int, _MIN_CHUNKING_MIN, _MIN_CHUNKING_MAX),
    'speed_factor': (float, _SPEED_MIN, _SPEED_MAX),
    'max_attempts': (int, _ATTEMPTS_MIN, _ATTEMPTS_MAX),
    'progress_tick_sec': (float, _TICK_SEC_MIN, _TICK_SEC_MAX),
    'progress_tick_fraction': (float, _TICK_FRACTION_MIN, _TICK_FRACTION_MAX),
}


@dataclass(frozen=True)
class ChunkSettings:
    chunk_seconds: float = CHUNK_SECONDS
    overlap_seconds: float = CHUNK_OVERLAP_SEC
    min_duration_for_chunking: float = MIN_DURATION_FOR_CHUNKING


class AppConfig:
    """Manages application configuration stored as JSON."""

    def __init__(self, config_path: Path | None = None):
        self.path = config_path or CONFIG_PATH
        self._data: dict = {}
        self.load()

    def load(self):
        """Load config from disk, merging with defaults."""
        self._data = dict(_DEFAULTS)
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    saved = json.load(f)
                for key, value in saved.items():
                    self._data[key] = self._validate(key, value)
            except (OSError, ValueError) as e:
                logger.warning("Failed to load config: %s", e)

    def save(self):
        """Persist config to disk."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._data, f, indent=2)

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def set(self, key: str, value):
        value = self._validate(key, value)
        self._data[key] = value
        self.save()

    def _validate(self, key: str, value):
        """Validate and coerce config values to safe ranges."""
        if key in _NUMERIC_BOUNDS:
            kind, low, high = _NUMERIC_BOUNDS[key]
            try:
                value = kind(value)
            except (TypeError, ValueError):
                logger.warning("Invalid %s %r, using default", key, value)
                return _DEFAULTS[key]
            return max(low, min(high, value))

        if key == 'convert_profile':
            if value not in CONVERT_PROFILES:
                logger.warning("Invalid convert_profile %r, using %s", value, ConvertProfile.VOICE)
                return ConvertProfile.VOICE

        if key == 'keep_debug_artifacts':
            return bool(value)

        return value

    def chunk_settings(self) -> ChunkSettings:
        return ChunkSettings(
            chunk_seconds=self._data['chunk_seconds'],
            overlap_seconds=self._data['overlap_seconds'],
            min_duration_for_chunking=self._data['min_duration_for_chunking'],
        )

    @property
    def storage_root(self) -> Path:
        return Path(self._data.get('storage_root', str(DEFAULT_STORAGE_ROOT)))

    @property
    def work_dir(self) -> Path:
        return Path(self._data.get('work_dir', str(DEFAULT_WORK_DIR)))

    @property
    def db_path(self) -> Path:
        return Path(self._data.get('db_path', str(DB_PATH)))

    @property
    def speed_factor(self) -> float:
        return self._data.get('speed_factor', SPEED_FACTOR)

    @property
    def max_attempts(self) -> int:
        return self._data.get('max_attempts', MAX_ATTEMPTS)

    @property
    def convert_profile(self) -> str:
        return self._data.get('convert_profile', ConvertProfile.VOICE)

    @property
    def keep_debug_artifacts(self) -> bool:
        return self._data.get('keep_debug_artifacts', False)

