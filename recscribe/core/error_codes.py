"""
Standardised error handling for RecScribe.

Every failure that leaves a pipeline attempt is a JobError. Its ``retryable``
flag is what the queue runner reads to decide between a new attempt and a
terminal failure.
"""

import subprocess

import requests

from recscribe.core.constants import ErrorCode, RETRYABLE_ERRORS


class JobError(Exception):
    """Raised when a job encounters a known error condition."""

    def __init__(self, code: str, message: str, retryable: bool | None = None):
        self.code = code
        self.message = message
        # auto-detect retryable from code if not explicitly set
        self.retryable = retryable if retryable is not None else (code in RETRYABLE_ERRORS)
        super().__init__(f"[{code}] {message}")


class ProviderError(JobError):
    """
    Failure reported by an external provider (speech-to-text, summarization).

    ``status_code`` is the HTTP status, or None when the request never got a
    response (timeout, connection reset).
    """

    def __init__(self, code: str, message: str, status_code: int | None = None,
                 retryable: bool | None = None):
        self.status_code = status_code
        super().__init__(code, message, retryable)

    @classmethod
    def from_status(cls, status_code: int, body: str = "") -> "ProviderError":
        """Build a classified error from an HTTP status and response body."""
        detail = body[:300] if body else "No response body"
        if status_code == 429:
            code = ErrorCode.PROVIDER_RATE_LIMITED
        elif status_code >= 500:
            code = ErrorCode.PROVIDER_SERVER
        else:
            code = ErrorCode.PROVIDER_CLIENT
        return cls(code, f"Provider returned {status_code}: {detail}",
                   status_code=status_code)


class InsufficientCreditsError(JobError):
    """Raised by the credit gate when the account cannot cover a recording."""

    def __init__(self, credits_needed: int, credits_available: float):
        self.credits_needed = credits_needed
        self.credits_available = credits_available
        self.shortfall = max(0, credits_needed - credits_available)
        super().__init__(
            ErrorCode.INSUFFICIENT_CREDITS,
            f"Insufficient credits: {credits_needed} needed, "
            f"{credits_available:g} available (short by {self.shortfall:g})",
            retryable=False,
        )


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_ERRORS


def classify_error(exc: BaseException) -> JobError:
    """
    Map any exception escaping a pipeline stage onto a JobError.
    Unknown failures are retryable so a transient fault never becomes final.
    """
    if isinstance(exc, JobError):
        return exc
    if isinstance(exc, requests.exceptions.Timeout):
        return ProviderError(ErrorCode.PROVIDER_TIMEOUT, f"Provider request timed out: {exc}")
    if isinstance(exc, requests.exceptions.ConnectionError):
        return ProviderError(ErrorCode.NETWORK_TRANSIENT, f"Network error: {exc}")
    if isinstance(exc, subprocess.TimeoutExpired):
        return JobError(ErrorCode.FFMPEG_TIMEOUT, f"Media tool timed out after {exc.timeout}s")
    if isinstance(exc, FileNotFoundError):
        return JobError(ErrorCode.SOURCE_MISSING, f"File not found: {exc.filename}")
    if isinstance(exc, OSError):
        return JobError(ErrorCode.STORAGE_IO, f"I/O error: {exc}")
    return JobError(ErrorCode.UNEXPECTED, f"{type(exc).__name__}: {exc}", retryable=True)


def is_final_attempt(attempt_number: int, max_attempts: int) -> bool:
    return attempt_number >= max_attempts
