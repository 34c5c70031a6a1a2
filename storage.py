"""
Filesystem blob store for uploaded documents.

Blobs are addressed by generated keys; the user supplied filename only
contributes its extension and is otherwise kept in the database record.
"""

import logging
import os
import re
import secrets
import time
from pathlib import Path
from typing import Optional

from errors import Internal, NotFound

logger = logging.getLogger(__name__)

UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")
_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


def safe_extension(filename: Optional[str]) -> str:
    ext = os.path.splitext(os.path.basename(filename or ""))[1]
    return ext.lower() if _EXTENSION_RE.match(ext) else ""


class LocalBlobStore:
    def __init__(self, base_path: str = UPLOAD_DIR):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        if not key or not _KEY_RE.match(key) or key in (".", ".."):
            raise NotFound("File not found on server")
        return self.base_path / key

    def new_key(self, suggested_name: Optional[str], field: str = "document") -> str:
        return f"{field}-{int(time.time() * 1000)}-{secrets.token_hex(6)}{safe_extension(suggested_name)}"

    def store(self, data: bytes, suggested_name: Optional[str], field: str = "document") -> str:
        key = self.new_key(suggested_name, field)
        path = self._key_to_path(key)
        try:
            # "xb" refuses to overwrite an existing blob
            with open(path, "xb") as f:
                f.write(data)
        except OSError as e:
            logger.error("Could not store blob %s: %s", key, e)
            raise Internal("File upload error")
        return key

    def exists(self, key: str) -> bool:
        try:
            return self._key_to_path(key).is_file()
        except NotFound:
            return False

    def retrieve(self, key: str) -> bytes:
        path = self._key_to_path(key)
        if not path.is_file():
            logger.error("File not found on disk - %s", path)
            raise NotFound("File not found on server")
        return path.read_bytes()

    def delete(self, key: str) -> bool:
        try:
            path = self._key_to_path(key)
        except NotFound:
            return False
        if path.is_file():
            path.unlink()
            return True
        return False


_store: Optional[LocalBlobStore] = None


def get_blob_store() -> LocalBlobStore:
    global _store
    if _store is None:
        _store = LocalBlobStore()
    return _store
