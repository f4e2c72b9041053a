# finance_api/services/blob_store.py
import logging
import os
from typing import Protocol

logger = logging.getLogger(__name__)


class BlobStore(Protocol):
    def put(self, data: bytes, key: str) -> str:
        ...

    def delete(self, key: str) -> None:
        ...


class LocalBlobStore:
    """
    Stores blobs as files under ``root``; the app serves that directory at
    ``base_url`` so the returned URL can be fetched directly.
    """

    def __init__(self, root: str, base_url: str = "/uploads"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if os.path.commonpath([path, self.root]) != self.root:
            raise ValueError(f"Blob key escapes storage root: {key}")
        return path

    def put(self, data: bytes, key: str) -> str:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as f:
            f.write(data)
        logger.info("Stored blob %s (%d bytes)", key, len(data))
        return f"{self.base_url}/{key}"

    def delete(self, key: str) -> None:
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)
            logger.info("Deleted blob %s", key)
