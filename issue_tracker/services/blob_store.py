"""
Local disk storage for uploaded photos.

Files are written under UPLOAD_PATH with a random name; the database keeps
the path. Deletes are best effort: failures are logged and never raised.
"""

import logging
import os
import secrets
import time
from dataclasses import dataclass
from typing import Iterable

from fastapi import UploadFile

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}
ALLOWED_MIME_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


@dataclass
class StoredBlob:
    filename: str
    original_name: str
    mime_type: str
    size: int
    path: str


class FileTooLarge(Exception):
    pass


class LocalBlobStore:
    def __init__(self, root: str, max_file_size: int):
        self.root = root
        self.max_file_size = max_file_size

    def ensure_root(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    @staticmethod
    def is_allowed_image(upload: UploadFile) -> bool:
        extension = os.path.splitext(upload.filename or "")[1].lower()
        return extension in ALLOWED_EXTENSIONS and (upload.content_type or "").lower() in ALLOWED_MIME_TYPES

    def save(self, upload: UploadFile, prefix: str = "photos") -> StoredBlob:
        """Stream an upload to disk; raises FileTooLarge past max_file_size."""
        self.ensure_root()
        extension = os.path.splitext(upload.filename or "")[1].lower()
        filename = f"{prefix}-{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{extension}"
        path = os.path.join(self.root, filename)

        size = 0
        with open(path, "wb") as out:
            while True:
                chunk = upload.file.read(64 * 1024)
                if not chunk:
                    break
                size += len(chunk)
                if size > self.max_file_size:
                    break
                out.write(chunk)

        if size > self.max_file_size:
            self.delete(path)
            raise FileTooLarge(upload.filename)

        return StoredBlob(
            filename=filename,
            original_name=upload.filename or filename,
            mime_type=upload.content_type or "application/octet-stream",
            size=size,
            path=path,
        )

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def delete(self, path: str) -> None:
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning(f"Error deleting file {path}: {e}")

    def delete_many(self, paths: Iterable[str]) -> None:
        for path in paths:
            self.delete(path)

