"""
Security utilities for RecScribe.
- Path traversal protection for storage keys
- Filename sanitization
- Safe subprocess execution (argument arrays only)
- API key resolution (environment, then config)
"""

import os
import re
import subprocess
import pathlib
import logging

from recscribe.core.constants import (
    UNSAFE_FILENAME_CHARS,
    MAX_FILENAME_LEN,
    API_KEY_ENV,
)

logger = logging.getLogger(__name__)


# ── Filename / path safety ────────────────────────────────────────────

def sanitize_file_name(name: str) -> str:
    """Sanitize an uploaded file name for use inside a storage key."""
    if not name:
        return ""
    # Replace unsafe characters with underscore
    safe = re.sub(UNSAFE_FILENAME_CHARS, '_', name)
    # Remove path traversal sequences
    safe = safe.replace('..', '')
    # Collapse whitespace runs
    safe = re.sub(r'\s+', ' ', safe).strip()
    # Truncate, keeping the extension
    if len(safe) > MAX_FILENAME_LEN:
        stem, ext = os.path.splitext(safe)
        safe = stem[:MAX_FILENAME_LEN - len(ext)].rstrip() + ext
    # Remove leading dots (hidden files)
    safe = safe.lstrip('.')
    return safe


def replace_extension(file_name: str, new_ext: str) -> str:
    """'meeting.wav' -> 'meeting.m4a'; names without an extension get one appended."""
    stem, _ = os.path.splitext(file_name)
    return f"{stem or file_name}{new_ext}"


def resolve_inside(root: pathlib.Path, relative: str) -> pathlib.Path:
    """
    Resolve ``relative`` under ``root``. Raises ValueError when the result
    escapes root (absolute keys, '..' segments, symlink tricks).
    """
    real_root = root.resolve(strict=False)
    candidate = (real_root / relative).resolve(strict=False)
    if candidate != real_root and real_root not in candidate.parents:
        raise ValueError(f"Path traversal detected: {relative!r}")
    return candidate


# ── Subprocess safety ─────────────────────────────────────────────────

def run_subprocess(args: list[str], **kwargs) -> subprocess.CompletedProcess:
    """
    Execute a subprocess using argument arrays only.
    shell=True is explicitly forbidden.
    """
    if not isinstance(args, (list, tuple)):
        raise TypeError("Subprocess args must be a list/tuple, not a string")

    # Force shell=False: remove any caller-supplied value, then set it once
    kwargs.pop('shell', None)

    logger.debug("Running subprocess: %s", ' '.join(str(a) for a in args))
    return subprocess.run(args, shell=False, **kwargs)


def run_subprocess_capture(args: list[str], timeout: int = 300, **kwargs) -> subprocess.CompletedProcess:
    """Run subprocess and capture stdout/stderr."""
    return run_subprocess(
        args,
        capture_output=True,
        text=True,
        timeout=timeout,
        **kwargs,
    )


# ── API key ───────────────────────────────────────────────────────────

def resolve_api_key(config=None) -> str | None:
    """Return the provider API key from the environment, falling back to config."""
    key = os.environ.get(API_KEY_ENV, "").strip()
    if key:
        return key
    if config is not None:
        key = (config.get('mistral_api_key') or "").strip()
        if key:
            return key
    return None
