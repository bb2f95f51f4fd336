"""
Local filesystem storage for recording blobs.
Keys look like <org_id>/<uuid>-<sanitized name> under the storage root.
"""

import logging
import mimetypes
import shutil
import uuid
from pathlib import Path

from recscribe.core.constants import ErrorCode
from recscribe.core.error_codes import JobError
from recscribe.core.models import StoredFile
from recscribe.core.security_utils import sanitize_file_name, resolve_inside

logger = logging.getLogger(__name__)


class LocalFileStorage:
    """Storage backend writing under a single root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        try:
            return resolve_inside(self.root, key)
        except ValueError as e:
            raise JobError(ErrorCode.STORAGE_PATH, str(e))

    def get_bytes(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.exists():
            raise JobError(ErrorCode.SOURCE_MISSING, f"Stored file not found: {key}")
        return path.read_bytes()

    def put(self, local_path, org_id: str, meta: dict) -> StoredFile:
        """
        Copy a local file into storage.
        ``meta`` carries originalName and mimeType.
        """
        original_name = sanitize_file_name(meta.get('originalName') or Path(local_path).name)
        if not original_name:
            original_name = "audio"
        mime_type = (meta.get('mimeType')
                     or mimetypes.guess_type(original_name)[0]
                     or "application/octet-stream")

        key = f"{sanitize_file_name(str(org_id)) or 'default'}/{uuid.uuid4().hex}-{original_name}"
        dest = self._resolve(key)
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, dest)

        size = dest.stat().st_size
        logger.info("Stored %s (%d bytes)", key, size)
        return StoredFile(path=key, size=size, mime_type=mime_type)

    def delete(self, key: str):
        path = self._resolve(key)
        try:
            path.unlink()
            logger.debug("Deleted stored file: %s", key)
        except FileNotFoundError:
            pass
