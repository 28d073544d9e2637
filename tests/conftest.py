"""Shared pytest fixtures and in-memory fakes for the docrag test suite."""

import os

os.environ.setdefault("OPENAI_API_KEY", "test-key")

from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

import pytest

from docrag.core.exceptions import ChunkStoreError, DocumentNotFoundError, LLMError, ObjectStoreError
from docrag.models.chat import ChatMessage, ChatSession, Citation, FeedbackType
from docrag.models.document import ChunkData, DocumentRecord, DocumentStatus, VectorMatch, VectorMetadata
from docrag.services.chat_history import session_name_from_query
from docrag.services.chunk_store import chunks_ref_for
from docrag.services.stream import BufferedStreamWriter

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeDocumentStore:
    """Document repository keeping rows in a dict."""

    def __init__(self, documents: Optional[List[DocumentRecord]] = None) -> None:
        self.documents: Dict[str, DocumentRecord] = {d.document_id: d for d in documents or []}
        self.status_calls: List[tuple] = []
        self.fail_on: Optional[DocumentStatus] = None
        self.soft_deleted: List[str] = []

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        return self.documents.get(document_id)

    async def update_status(
        self, document_id: str, status: DocumentStatus, error_message: Optional[str] = None
    ) -> None:
        self.status_calls.append((document_id, status, error_message))
        if self.fail_on == status:
            raise RuntimeError("database unavailable")
        if document_id not in self.documents:
            raise DocumentNotFoundError(f"Document {document_id} not found")
        self.documents[document_id].status = status
        if status == DocumentStatus.FAILED:
            self.documents[document_id].error_message = error_message

    async def soft_delete(self, document_id: str) -> None:
        self.soft_deleted.append(document_id)
        self.documents[document_id].status = DocumentStatus.DELETED


class FakeChatHistory:
    """Chat history repository with the same overwrite rules as PostgreSQL."""

    def __init__(self) -> None:
        self.sessions: Dict[str, ChatSession] = {}
        self.messages: Dict[str, ChatMessage] = {}
        self.fail = False

    async def save_exchange(
        self,
        history_id: str,
        session_id: str,
        owner_id: str,
        query: str,
        answer: str,
        citations: List[Citation],
        created_at: datetime,
    ) -> None:
        if self.fail:
            raise RuntimeError("history unavailable")

        session = self.sessions.get(session_id)
        if session is None:
            self.sessions[session_id] = ChatSession(
                session_id=session_id,
                owner_id=owner_id,
                session_name=session_name_from_query(query),
                created_at=created_at,
                last_message_at=created_at,
            )
        else:
            session.last_message_at = created_at

        existing = self.messages.get(history_id)
        self.messages[history_id] = ChatMessage(
            history_id=history_id,
            session_id=session_id,
            owner_id=owner_id,
            user_query=query,
            ai_response=answer,
            source_documents=citations,
            feedback=FeedbackType.NONE,
            created_at=existing.created_at if existing else created_at,
            updated_at=created_at,
        )


class FakeLLM:
    """Streams fixed fragments, optionally failing after them."""

    def __init__(self, fragments: List[str], error: Optional[Exception] = None) -> None:
        self.fragments = fragments
        self.error = error
        self.prompts: List[tuple] = []

    async def stream_response(self, prompt: str, system_prompt: Optional[str] = None) -> AsyncIterator[str]:
        self.prompts.append((prompt, system_prompt))
        for fragment in self.fragments:
            yield fragment
        if self.error:
            raise self.error


class FakeEmbedding:
    """Deterministic embeddings derived from text length."""

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [[float(len(text)), 1.0, 0.0] for text in texts]

    async def generate_embedding(self, text: str) -> List[float]:
        return (await self.generate_embeddings([text]))[0]


class FakeVectorDB:
    """Records writes and serves preset search matches."""

    def __init__(self, matches: Optional[List[VectorMatch]] = None) -> None:
        self.matches = matches or []
        self.upserted = []
        self.searches: List[dict] = []
        self.deleted: List[str] = []
        self.delete_error: Optional[Exception] = None

    async def upsert_vectors(self, vectors) -> None:
        self.upserted.extend(vectors)

    async def search_by_owner(self, query_embedding, owner_id: str, top_k: int = 5) -> List[VectorMatch]:
        self.searches.append({"owner_id": owner_id, "top_k": top_k})
        return self.matches[:top_k]

    async def delete_document_vectors(self, document_id: str) -> int:
        if self.delete_error:
            raise self.delete_error
        self.deleted.append(document_id)
        return len(self.upserted)


class FakeChunkStore:
    """Keeps chunk lists in memory."""

    def __init__(self) -> None:
        self.blobs: Dict[str, List[ChunkData]] = {}

    async def save_chunks(self, document_id: str, chunks: List[ChunkData]) -> str:
        ref = chunks_ref_for(document_id)
        self.blobs[ref] = list(chunks)
        return ref

    async def load_chunks(self, chunks_ref: str) -> List[ChunkData]:
        if chunks_ref not in self.blobs:
            raise ChunkStoreError(f"Chunks not found: {chunks_ref}")
        return self.blobs[chunks_ref]

    async def delete_chunks(self, chunks_ref: str) -> None:
        self.blobs.pop(chunks_ref, None)


class FakeObjectStore:
    """Objects keyed by ``(bucket, key)``."""

    def __init__(self, objects: Optional[Dict[tuple, bytes]] = None) -> None:
        self.objects = dict(objects or {})
        self.deleted: List[tuple] = []

    async def get_object(self, bucket: str, key: str) -> bytes:
        data = self.objects.get((bucket, key))
        if not data:
            raise ObjectStoreError(f"Missing object {bucket}/{key}")
        return data

    async def delete_object(self, bucket: str, key: str) -> None:
        self.deleted.append((bucket, key))
        self.objects.pop((bucket, key), None)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_document(
    document_id: str = "doc-1",
    owner_id: str = "owner-1",
    content_type: str = "text/plain",
    status: DocumentStatus = DocumentStatus.PENDING_UPLOAD,
) -> DocumentRecord:
    return DocumentRecord(
        document_id=document_id,
        owner_id=owner_id,
        file_name=f"{document_id}.txt",
        content_type=content_type,
        file_size=100,
        status=status,
        object_key=f"uploads/{owner_id}/{document_id}",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def make_match(text: str, file_name: str, score: float, document_id: str = "doc-1") -> VectorMatch:
    return VectorMatch(
        id=f"{document_id}#0",
        score=score,
        metadata=VectorMetadata(
            document_id=document_id,
            file_name=file_name,
            owner_id="owner-1",
            chunk_index=0,
            total_chunks=1,
            text=text,
            created_at="2024-01-01T00:00:00+00:00",
        ),
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def writer() -> BufferedStreamWriter:
    """In-memory stream writer."""
    return BufferedStreamWriter()


@pytest.fixture
def history() -> FakeChatHistory:
    return FakeChatHistory()


@pytest.fixture
def sample_text() -> str:
    """A few paragraphs of prose long enough for several parent windows."""
    paragraph = (
        "Retrieval-augmented generation grounds a language model in documents "
        "supplied by the user. Each document is split into windows, embedded, "
        "and stored so that a question can be answered from the closest passages. "
    )
    return "\n\n".join(paragraph * 2 for _ in range(6))
