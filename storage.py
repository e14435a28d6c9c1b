"""
Blob storage for product and banner images.

Objects live on the local filesystem under ``root/<folder>/<name>`` and are
published at ``<base_url>/<folder>/<name>``; ``main`` serves the root as
static files.
"""
import re
import uuid
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from pydantic import BaseModel

from errors import StorageError

MAX_UPLOAD_BYTES = {
    "products": 5 * 1024 * 1024,
    "banners": 10 * 1024 * 1024,
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class UploadResult(BaseModel):
    url: str
    path: str


def sanitize_filename(filename: str) -> str:
    name = Path(filename or "").name
    name = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return name or "upload"


class BlobStorage:
    def __init__(self, root: Union[str, Path], base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(self, folder: str, filename: str, content: bytes, content_type: Optional[str] = None) -> UploadResult:
        if folder not in MAX_UPLOAD_BYTES:
            raise StorageError(f"Unknown storage folder '{folder}'")
        if content_type and not content_type.startswith("image/"):
            raise StorageError("Only image uploads are allowed")
        if not content:
            raise StorageError("Uploaded file is empty")
        limit = MAX_UPLOAD_BYTES[folder]
        if len(content) > limit:
            raise StorageError(f"File is too large (max {limit // (1024 * 1024)} MB)")

        path = f"{folder}/{uuid.uuid4().hex}-{sanitize_filename(filename)}"
        target = self.root / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        logger.info("Stored {} ({} bytes)", path, len(content))
        return UploadResult(url=f"{self.base_url}/{path}", path=path)

    def path_from_url(self, url_or_path: str) -> Optional[str]:
        """Storage path for one of our URLs or paths, None for foreign URLs."""
        if not url_or_path:
            return None
        if url_or_path.startswith(self.base_url + "/"):
            return url_or_path[len(self.base_url) + 1:]
        if "://" in url_or_path:
            return None
        return url_or_path.lstrip("/")

    def _resolve(self, path: str) -> Optional[Path]:
        root = self.root.resolve()
        target = (root / path).resolve()
        if root not in target.parents:
            return None
        return target

    def exists(self, url_or_path: str) -> bool:
        path = self.path_from_url(url_or_path)
        target = self._resolve(path) if path else None
        return bool(target and target.is_file())

    def delete(self, url_or_path: str) -> bool:
        """Remove a stored object. Returns False if there was nothing of ours to remove."""
        path = self.path_from_url(url_or_path)
        if path is None:
            logger.debug("Not a stored object, skipping delete: {}", url_or_path)
            return False
        target = self._resolve(path)
        if target is None:
            raise StorageError("Invalid storage path")
        if not target.is_file():
            return False
        target.unlink()
        logger.info("Deleted stored object {}", path)
        return True
