"""Object store for uploaded files, one directory per bucket."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from docrag.core.config import settings
from docrag.core.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)


class ObjectStore:
    """Reads and removes uploaded objects under ``{root}/{bucket}/{key}``."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or settings.object_store_root)

    def _path_for(self, bucket: str, key: str) -> Path:
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise ObjectStoreError(f"Key escapes bucket: {key}")
        return path

    async def get_object(self, bucket: str, key: str) -> bytes:
        """
        Read an object.

        Raises:
            ObjectStoreError: If the object is missing or empty.
        """
        path = self._path_for(bucket, key)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise ObjectStoreError(f"Failed to read object {bucket}/{key}: {str(e)}") from e
        if not data:
            raise ObjectStoreError(f"Empty object {bucket}/{key}")
        return data

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object; a missing object is not an error."""
        path = self._path_for(bucket, key)
        try:
            await asyncio.to_thread(path.unlink, True)
        except OSError as e:
            raise ObjectStoreError(f"Failed to delete object {bucket}/{key}: {str(e)}") from e
        logger.info(f"Deleted object {bucket}/{key}")
