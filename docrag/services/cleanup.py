"""Document deletion: vectors, stored object and the document record."""

import asyncio
import logging

from docrag.core.exceptions import DocumentNotFoundError
from docrag.models.document import DocumentStatus
from docrag.services.database import DocumentRepository
from docrag.services.object_store import ObjectStore
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


class DocumentCleanupService:
    """Removes a document and everything derived from it."""

    def __init__(
        self,
        documents: DocumentRepository,
        vector_db: VectorDBService,
        object_store: ObjectStore,
        bucket: str,
    ) -> None:
        self.documents = documents
        self.vector_db = vector_db
        self.object_store = object_store
        self.bucket = bucket

    async def delete_document(self, document_id: str, owner_id: str) -> DocumentStatus:
        """
        Delete a document owned by ``owner_id``.

        The record goes to DELETING, vectors and the upload are removed
        concurrently, then the record is soft-deleted. A failed vector
        delete leaves it in DELETE_FAILED so the delete can be retried.

        Returns:
            DELETED or DELETE_FAILED.

        Raises:
            DocumentNotFoundError: If the document does not exist for this owner.
        """
        document = await self.documents.get_document(document_id)
        if not document or document.owner_id != owner_id:
            raise DocumentNotFoundError(f"Document {document_id} not found")

        await self.documents.update_status(document_id, DocumentStatus.DELETING)

        vector_result, object_result = await asyncio.gather(
            self.vector_db.delete_document_vectors(document_id),
            self.object_store.delete_object(self.bucket, document.object_key),
            return_exceptions=True,
        )

        if isinstance(object_result, Exception):
            logger.error(f"Failed to delete object for document {document_id}: {str(object_result)}")

        if isinstance(vector_result, Exception):
            logger.error(f"Failed to delete vectors for document {document_id}: {str(vector_result)}")
            await self.documents.update_status(document_id, DocumentStatus.DELETE_FAILED)
            return DocumentStatus.DELETE_FAILED

        await self.documents.soft_delete(document_id)
        logger.info(f"Deleted document {document_id} ({vector_result} vectors)")
        return DocumentStatus.DELETED
