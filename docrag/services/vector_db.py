"""Qdrant vector database service."""

import logging
import uuid
from typing import Any, Dict, List, Optional, Union

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from docrag.core.config import settings
from docrag.core.exceptions import VectorDBError
from docrag.core.secrets import SecretCache
from docrag.models.document import VectorMatch, VectorMetadata, VectorRecord, vector_id_prefix
from docrag.monitoring.metrics import vectors_upserted_total

logger = logging.getLogger(__name__)

POINT_NAMESPACE = uuid.UUID("00000000-0000-0000-0000-000000000000")

INDEXED_FIELDS = ("document_id", "owner_id")

PointId = Union[str, int]


def point_id_for(vector_id: str) -> str:
    """
    Map a ``{documentId}#{chunkIndex}`` vector id to a Qdrant point id.

    Qdrant only accepts UUIDs or integers, so the vector id is hashed into a
    UUID5; the readable id is kept in the ``vector_id`` payload field.
    """
    return str(uuid.uuid5(POINT_NAMESPACE, vector_id))


def build_equality_filter(conditions: Optional[Dict[str, Any]]) -> Optional[Filter]:
    """Turn ``{field: value}`` into a Qdrant filter matching every pair."""
    if not conditions:
        return None
    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in conditions.items()
        ]
    )


class VectorDBService:
    """Service for interacting with Qdrant vector database."""

    def __init__(
        self,
        secrets: Optional[SecretCache] = None,
        client: Optional[AsyncQdrantClient] = None,
    ) -> None:
        """Initialize the vector database service."""
        self.secrets = secrets or SecretCache()
        self.client: Optional[AsyncQdrantClient] = client
        self.collection_name = settings.qdrant_collection_name
        self.dimensions = settings.embedding_dimensions
        self.upsert_batch_size = settings.upsert_batch_size
        self.delete_batch_size = settings.delete_batch_size
        self.list_page_size = settings.list_page_size

    async def connect(self) -> None:
        """Connect to Qdrant."""
        try:
            self.client = AsyncQdrantClient(
                url=settings.qdrant_url,
                api_key=self.secrets.get_optional("qdrant_api_key"),
                timeout=30.0,
            )
            await self._ensure_collection()
        except Exception as e:
            raise VectorDBError(
                f"Failed to connect to Qdrant: {str(e)}") from e

    async def disconnect(self) -> None:
        """Disconnect from Qdrant."""
        if self.client:
            await self.client.close()

    def _require_client(self) -> AsyncQdrantClient:
        if not self.client:
            raise VectorDBError("Client not connected")
        return self.client

    async def _ensure_collection(self) -> None:
        """Ensure the collection and its payload indexes exist."""
        client = self._require_client()

        collections = await client.get_collections()
        collection_names = [col.name for col in collections.collections]

        if self.collection_name not in collection_names:
            await client.create_collection(
                collection_name=self.collection_name,
                vectors_config=VectorParams(
                    size=self.dimensions,
                    distance=Distance.COSINE,
                ),
            )
            for field_name in INDEXED_FIELDS:
                await client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD,
                )

    async def upsert_vectors(self, vectors: List[VectorRecord]) -> None:
        """
        Upsert vectors in fixed-size batches, one write per batch.

        Args:
            vectors: Vectors to write.
        """
        client = self._require_client()

        for start in range(0, len(vectors), self.upsert_batch_size):
            batch = vectors[start:start + self.upsert_batch_size]
            points = [
                PointStruct(
                    id=point_id_for(vector.id),
                    vector=vector.values,
                    payload={"vector_id": vector.id, **vector.metadata.model_dump()},
                )
                for vector in batch
            ]
            try:
                await client.upsert(collection_name=self.collection_name, points=points)
            except Exception as e:
                raise VectorDBError(f"Failed to upsert vectors: {str(e)}") from e
            vectors_upserted_total.inc(len(points))

    async def list_vector_ids(self, document_id: str) -> List[PointId]:
        """
        List the point ids of every vector whose id starts with ``{documentId}#``.

        Pages through the collection until no continuation offset is returned.

        Args:
            document_id: Document whose vectors are listed.

        Returns:
            Point ids.
        """
        client = self._require_client()
        prefix = vector_id_prefix(document_id)
        scroll_filter = build_equality_filter({"document_id": document_id})

        point_ids: List[PointId] = []
        offset = None
        while True:
            try:
                records, offset = await client.scroll(
                    collection_name=self.collection_name,
                    scroll_filter=scroll_filter,
                    limit=self.list_page_size,
                    offset=offset,
                    with_payload=["vector_id"],
                    with_vectors=False,
                )
            except Exception as e:
                raise VectorDBError(f"Failed to list vectors: {str(e)}") from e

            for record in records:
                vector_id = (record.payload or {}).get("vector_id", "")
                if vector_id.startswith(prefix):
                    point_ids.append(record.id)

            if offset is None:
                break

        return point_ids

    async def delete_document_vectors(self, document_id: str) -> int:
        """
        Delete all vectors for a document.

        Ids are listed first and deleted by explicit id in batches; listing
        nothing is a no-op.

        Args:
            document_id: ID of the document to delete.

        Returns:
            Number of vectors deleted.
        """
        client = self._require_client()
        point_ids = await self.list_vector_ids(document_id)
        if not point_ids:
            return 0

        for start in range(0, len(point_ids), self.delete_batch_size):
            batch = point_ids[start:start + self.delete_batch_size]
            try:
                await client.delete(
                    collection_name=self.collection_name,
                    points_selector=PointIdsList(points=batch),
                )
            except Exception as e:
                raise VectorDBError(f"Failed to delete vectors: {str(e)}") from e

        logger.info(f"Deleted {len(point_ids)} vectors for document {document_id}")
        return len(point_ids)

    async def search(
        self,
        query_embedding: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """
        Search for similar chunks.

        Args:
            query_embedding: Query embedding vector.
            top_k: Number of results to return.
            filter: Optional ``{field: value}`` equality conditions.

        Returns:
            Matches ordered by descending score.
        """
        client = self._require_client()

        try:
            results = await client.query_points(
                collection_name=self.collection_name,
                query=query_embedding,
                limit=top_k,
                query_filter=build_equality_filter(filter),
                with_payload=True,
            )
        except Exception as e:
            raise VectorDBError(f"Failed to search vectors: {str(e)}") from e

        matches = []
        for point in results.points:
            payload = dict(point.payload or {})
            vector_id = payload.pop("vector_id", str(point.id))
            matches.append(
                VectorMatch(
                    id=vector_id,
                    score=point.score or 0.0,
                    metadata=VectorMetadata(**payload),
                )
            )

        return matches

    async def search_by_owner(
        self, query_embedding: List[float], owner_id: str, top_k: int = 5
    ) -> List[VectorMatch]:
        """Search restricted to one owner's vectors."""
        return await self.search(query_embedding, top_k=top_k, filter={"owner_id": owner_id})
