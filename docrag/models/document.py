"""Document models for the RAG system."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DocumentStatus(str, Enum):
    """Lifecycle status of an uploaded document."""

    PENDING_UPLOAD = "PENDING_UPLOAD"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    DELETING = "DELETING"
    DELETED = "DELETED"
    DELETE_FAILED = "DELETE_FAILED"


# Statuses that end an ingestion run and drop the active-work marker.
TERMINAL_INGESTION_STATUSES = frozenset({DocumentStatus.COMPLETED, DocumentStatus.FAILED})

PROCESSING_ACTIVE = "ACTIVE"


class DocumentRecord(BaseModel):
    """Document row as stored in PostgreSQL."""

    document_id: str
    owner_id: str
    file_name: str
    content_type: str
    file_size: int = 0
    status: DocumentStatus
    error_message: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    object_key: str
    processing_status: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ChunkData(BaseModel):
    """One small-to-big chunk: the child is embedded, the parent is returned as context."""

    child_text: str
    parent_text: str
    chunk_index: int
    parent_id: str

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VectorMetadata(BaseModel):
    """Payload stored alongside each vector."""

    document_id: str
    file_name: str
    owner_id: str
    chunk_index: int
    total_chunks: int
    text: str
    parent_id: Optional[str] = None
    created_at: str


class VectorRecord(BaseModel):
    """Vector ready for upsert. ``id`` is always ``{documentId}#{chunkIndex}``."""

    id: str
    values: List[float]
    metadata: VectorMetadata


class VectorMatch(BaseModel):
    """Similarity search hit."""

    id: str
    score: float
    metadata: VectorMetadata


def generate_vector_id(document_id: str, chunk_index: int) -> str:
    """Build the deterministic vector id for a chunk."""
    return f"{document_id}#{chunk_index}"


def vector_id_prefix(document_id: str) -> str:
    """Prefix shared by every vector id of a document."""
    return f"{document_id}#"
