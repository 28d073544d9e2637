"""Unit tests for document deletion."""

import pytest

from conftest import FakeDocumentStore, FakeObjectStore, FakeVectorDB, make_document
from docrag.core.exceptions import DocumentNotFoundError, ObjectStoreError, VectorDBError
from docrag.models.document import DocumentStatus
from docrag.services.cleanup import DocumentCleanupService


def _service(vector_db=None, object_store=None, documents=None):
    documents = documents or FakeDocumentStore([make_document(status=DocumentStatus.COMPLETED)])
    service = DocumentCleanupService(
        documents, vector_db or FakeVectorDB(), object_store or FakeObjectStore(), "bucket"
    )
    return service, documents


class TestDeleteDocument:

    @pytest.mark.asyncio
    async def test_deletes_vectors_object_and_record(self) -> None:
        vector_db = FakeVectorDB()
        object_store = FakeObjectStore()
        service, documents = _service(vector_db, object_store)

        status = await service.delete_document("doc-1", "owner-1")

        assert status == DocumentStatus.DELETED
        assert documents.status_calls[0][1] == DocumentStatus.DELETING
        assert vector_db.deleted == ["doc-1"]
        assert object_store.deleted == [("bucket", "uploads/owner-1/doc-1")]
        assert documents.soft_deleted == ["doc-1"]

    @pytest.mark.asyncio
    async def test_vector_failure_marks_delete_failed(self) -> None:
        vector_db = FakeVectorDB()
        vector_db.delete_error = VectorDBError("qdrant down")
        service, documents = _service(vector_db)

        status = await service.delete_document("doc-1", "owner-1")

        assert status == DocumentStatus.DELETE_FAILED
        assert documents.documents["doc-1"].status == DocumentStatus.DELETE_FAILED
        assert documents.soft_deleted == []

    @pytest.mark.asyncio
    async def test_object_failure_is_best_effort(self) -> None:
        class BrokenObjectStore(FakeObjectStore):
            async def delete_object(self, bucket, key):
                raise ObjectStoreError("disk gone")

        service, documents = _service(object_store=BrokenObjectStore())

        assert await service.delete_document("doc-1", "owner-1") == DocumentStatus.DELETED

    @pytest.mark.asyncio
    async def test_other_owner_cannot_delete(self) -> None:
        service, documents = _service()
        with pytest.raises(DocumentNotFoundError):
            await service.delete_document("doc-1", "intruder")
        assert documents.status_calls == []
