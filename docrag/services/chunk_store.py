"""Redis store for chunks handed from extractAndChunk to embedAndUpsert."""

import json
import logging
from typing import List, Optional

import redis.asyncio as redis

from docrag.core.config import settings
from docrag.core.exceptions import ChunkStoreError
from docrag.models.document import ChunkData

logger = logging.getLogger(__name__)

CHUNKS_KEY_PREFIX = "chunks:"


def chunks_ref_for(document_id: str) -> str:
    """Reference under which a document's chunks are stored."""
    return f"{CHUNKS_KEY_PREFIX}{document_id}"


class ChunkStore:
    """Keeps chunk lists between the two ingestion steps."""

    def __init__(self, client: Optional[redis.Redis] = None) -> None:
        """Initialize the chunk store."""
        self.client: Optional[redis.Redis] = client
        self.ttl = settings.chunk_store_ttl

    async def connect(self) -> None:
        """Connect to Redis."""
        try:
            self.client = redis.from_url(
                settings.redis_url,
                decode_responses=True,
                socket_connect_timeout=5.0,
            )
            await self.client.ping()
        except Exception as e:
            raise ChunkStoreError(f"Failed to connect to Redis: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self.client:
            await self.client.aclose()

    def _require_client(self) -> redis.Redis:
        if not self.client:
            raise ChunkStoreError("Redis not connected")
        return self.client

    async def save_chunks(self, document_id: str, chunks: List[ChunkData]) -> str:
        """
        Store chunks for a document.

        Args:
            document_id: Document the chunks belong to.
            chunks: Chunks to store.

        Returns:
            The chunks reference.
        """
        client = self._require_client()
        ref = chunks_ref_for(document_id)
        value = json.dumps([chunk.model_dump(by_alias=True) for chunk in chunks])
        try:
            await client.setex(ref, self.ttl, value)
        except Exception as e:
            raise ChunkStoreError(f"Failed to store chunks: {str(e)}") from e
        return ref

    async def load_chunks(self, chunks_ref: str) -> List[ChunkData]:
        """
        Load chunks by reference.

        Raises:
            ChunkStoreError: If the reference is unknown or expired.
        """
        client = self._require_client()
        try:
            value = await client.get(chunks_ref)
        except Exception as e:
            raise ChunkStoreError(f"Failed to load chunks: {str(e)}") from e
        if value is None:
            raise ChunkStoreError(f"Chunks not found: {chunks_ref}")
        return [ChunkData.model_validate(item) for item in json.loads(value)]

    async def delete_chunks(self, chunks_ref: str) -> None:
        """Drop stored chunks. Failures are logged only; the key expires anyway."""
        if not self.client:
            return
        try:
            await self.client.delete(chunks_ref)
        except Exception as e:
            logger.warning(f"Failed to delete chunks {chunks_ref}: {str(e)}")
