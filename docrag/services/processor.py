"""Ingestion steps: status updates, extraction and chunking, embedding and upsert."""

import logging
import time
from typing import Any, Dict, Optional, Protocol, Union

from pydantic import ValidationError

from docrag.core.exceptions import DocumentNotFoundError, ExtractionError, StepValidationError
from docrag.models.document import DocumentRecord, DocumentStatus, VectorRecord, generate_vector_id
from docrag.models.processor import (
    EmbedAndUpsertResult,
    EmbedAndUpsertStep,
    ExtractAndChunkResult,
    ExtractAndChunkStep,
    ProcessorStep,
    StepResult,
    UpdateStatusResult,
    UpdateStatusStep,
    processor_step_adapter,
)
from docrag.services.chunk_store import ChunkStore
from docrag.services.embedding import EmbeddingService
from docrag.services.object_store import ObjectStore
from docrag.services.text_processing import build_vector_metadata, chunk_document, extract_text
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class DocumentStore(Protocol):
    """The part of the document repository the steps need."""

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        ...

    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        ...


def parse_step(raw: Dict[str, Any]) -> ProcessorStep:
    """
    Validate a raw step request.

    Raises:
        StepValidationError: If the action is unknown or a required field is missing.
    """
    try:
        return processor_step_adapter.validate_python(raw)
    except ValidationError as e:
        logger.warning(f"Rejected step request (action={raw.get('action')!r}): {str(e)}")
        raise StepValidationError(f"Invalid step request: {str(e)}") from e


class StepProcessor:
    """Executes orchestrator steps for one document at a time."""

    def __init__(
        self,
        documents: DocumentStore,
        object_store: ObjectStore,
        chunk_store: ChunkStore,
        embedding_service: EmbeddingService,
        vector_db: VectorDBService,
    ) -> None:
        """
        Initialize step processor.

        Args:
            documents: Document record store.
            object_store: Store holding the uploaded files.
            chunk_store: Store for chunks between steps.
            embedding_service: Embedding generation service.
            vector_db: Vector database service.
        """
        self.documents = documents
        self.object_store = object_store
        self.chunk_store = chunk_store
        self.embedding_service = embedding_service
        self.vector_db = vector_db

    async def handle(self, raw: Union[Dict[str, Any], ProcessorStep]) -> StepResult:
        """
        Validate and execute one step.

        Args:
            raw: Step request as a dict or an already-parsed step.

        Returns:
            The step's result model.
        """
        step = parse_step(raw) if isinstance(raw, dict) else raw
        document_id = step.payload.document_id
        try:
            if isinstance(step, UpdateStatusStep):
                return await self.update_status(
                    document_id, step.status, step.error.message if step.error else None
                )
            if isinstance(step, ExtractAndChunkStep):
                return await self.extract_and_chunk(document_id, step.payload.bucket, step.payload.key)
            if isinstance(step, EmbedAndUpsertStep):
                return await self.embed_and_upsert(document_id, step.payload.chunks_ref)
            raise StepValidationError(f"Unknown action: {step.action}")
        except Exception as e:
            logger.error(f"Step {step.action} failed for document {document_id}: {str(e)}")
            raise

    async def _get_document(self, document_id: str) -> DocumentRecord:
        document = await self.documents.get_document(document_id)
        if not document:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        return document

    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> UpdateStatusResult:
        """Record a status transition."""
        await self.documents.update_status(document_id, status, error_message)
        return UpdateStatusResult(document_id=document_id, status=status)

    async def extract_and_chunk(self, document_id: str, bucket: str, key: str) -> ExtractAndChunkResult:
        """
        Extract text from the uploaded object and store its chunks.

        Args:
            document_id: Document being ingested.
            bucket: Bucket holding the upload.
            key: Object key of the upload.

        Returns:
            Reference to the stored chunks and their count.
        """
        document = await self._get_document(document_id)

        data = await self.object_store.get_object(bucket, key)
        text = extract_text(data, document.content_type)
        if not text.strip():
            raise ExtractionError("Extracted text is empty")

        chunks = chunk_document(text)
        if not chunks:
            raise ExtractionError("No chunks produced from extracted text")

        chunks_ref = await self.chunk_store.save_chunks(document_id, chunks)
        logger.info(f"Chunked document {document_id} into {len(chunks)} chunks")
        return ExtractAndChunkResult(
            document_id=document_id, chunks_ref=chunks_ref, chunk_count=len(chunks)
        )

    async def embed_and_upsert(self, document_id: str, chunks_ref: str) -> EmbedAndUpsertResult:
        """
        Embed child texts and upsert vectors whose payload is the parent text.

        Args:
            document_id: Document being ingested.
            chunks_ref: Reference returned by ``extract_and_chunk``.

        Returns:
            Number of vectors written.
        """
        start_time = time.time()
        document = await self._get_document(document_id)
        chunks = await self.chunk_store.load_chunks(chunks_ref)

        embeddings = await self.embedding_service.generate_embeddings(
            [chunk.child_text for chunk in chunks]
        )

        vectors = [
            VectorRecord(
                id=generate_vector_id(document_id, chunk.chunk_index),
                values=embedding,
                metadata=build_vector_metadata(
                    document_id=document_id,
                    file_name=document.file_name,
                    owner_id=document.owner_id,
                    chunk_index=chunk.chunk_index,
                    total_chunks=len(chunks),
                    text=chunk.parent_text,
                    parent_id=chunk.parent_id,
                ),
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]

        await self.vector_db.upsert_vectors(vectors)
        await self.chunk_store.delete_chunks(chunks_ref)

        logger.info(
            f"Upserted {len(vectors)} vectors for document {document_id} "
            f"in {time.time() - start_time:.2f}s"
        )
        return EmbedAndUpsertResult(document_id=document_id, vector_count=len(vectors))
