"""
Diagnostics: tool version detection and system checks.
"""

import logging

from recscribe.core.security_utils import run_subprocess_capture, resolve_api_key
from recscribe.core.constants import FFMPEG_BIN, FFPROBE_BIN

logger = logging.getLogger(__name__)


def get_tool_version(binary: str) -> str:
    """Return the first line of ``<binary> -version``, or an error message."""
    try:
        result = run_subprocess_capture([binary, "-version"], timeout=10)
        if result.returncode == 0:
            lines = result.stdout.strip().splitlines()
            return lines[0] if lines else "Unknown"
        return f"Error (rc={result.returncode})"
    except FileNotFoundError:
        return "Not installed"
    except Exception as e:
        return f"Error: {e}"


def get_diagnostics(config=None, verify_key: bool = False) -> dict:
    """Gather all diagnostic information. ``verify_key`` also asks Mistral about the key."""
    api_key = resolve_api_key(config)
    info = {
        "ffmpeg_version": get_tool_version(FFMPEG_BIN),
        "ffprobe_version": get_tool_version(FFPROBE_BIN),
        "api_key_configured": api_key is not None,
    }
    if verify_key and api_key:
        from recscribe.core.mistral_http import verify_api_key
        _, info["api_key_status"] = verify_api_key(api_key)
    return info
