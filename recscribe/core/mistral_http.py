"""
Shared HTTP plumbing for the Mistral API.
Turns transport failures and non-2xx responses into typed ProviderErrors.
"""

import json
import logging

import requests

from recscribe.core.constants import ErrorCode, MISTRAL_API_BASE
from recscribe.core.error_codes import JobError, ProviderError

logger = logging.getLogger(__name__)


def auth_headers(api_key: str) -> dict:
    return {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}


def require_api_key(api_key: str | None) -> str:
    if not api_key:
        raise JobError(ErrorCode.API_KEY_MISSING, "Mistral API key not configured")
    return api_key


def verify_api_key(api_key: str, api_base: str = MISTRAL_API_BASE) -> tuple[bool, str]:
    """
    Verify a Mistral API key with a lightweight request.
    Returns (success: bool, message: str).
    """
    try:
        resp = requests.get(f"{api_base}/models", headers=auth_headers(api_key), timeout=10)
    except requests.exceptions.ConnectionError:
        return False, "Network error: could not reach Mistral"
    except requests.exceptions.Timeout:
        return False, "Network error: request timed out"
    except requests.exceptions.RequestException as e:
        return False, f"Network error: {e}"

    if resp.status_code == 200:
        return True, "Key verified"
    if resp.status_code in (401, 403):
        return False, "Key invalid or rejected"
    return False, f"Unexpected response: {resp.status_code}"


def post(url: str, api_key: str, timeout: float, **kwargs) -> dict:
    """
    POST to the Mistral API and return the decoded JSON body.
    Raises ProviderError for transport failures and non-2xx statuses.
    """
    headers = auth_headers(api_key)
    headers.update(kwargs.pop('headers', {}))

    try:
        resp = requests.post(url, headers=headers, timeout=timeout, **kwargs)
    except requests.exceptions.Timeout:
        raise ProviderError(ErrorCode.PROVIDER_TIMEOUT,
                            f"Mistral request timed out after {timeout:.0f}s")
    except requests.exceptions.ConnectionError:
        raise ProviderError(ErrorCode.NETWORK_TRANSIENT, "Network error connecting to Mistral")
    except requests.exceptions.RequestException as e:
        raise ProviderError(ErrorCode.NETWORK_TRANSIENT, f"Mistral request failed: {e}")

    if not 200 <= resp.status_code < 300:
        # Sanitize error message (never log API key)
        error = ProviderError.from_status(resp.status_code, resp.text or "")
        logger.warning("Mistral %s -> %s (%s)", url.rsplit('/', 1)[-1], resp.status_code, error.code)
        raise error

    try:
        return resp.json()
    except (json.JSONDecodeError, ValueError):
        raise ProviderError(ErrorCode.PROVIDER_BAD_RESPONSE,
                            "Failed to parse Mistral response JSON",
                            status_code=resp.status_code)
