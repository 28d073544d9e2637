"""HTTP surface tests for the chat and ingestion services, without external stores."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChatHistory, FakeEmbedding, FakeLLM, FakeVectorDB, make_match
from docrag import chat_service, ingestion_service
from docrag.core.dependencies import services
from docrag.core.exceptions import DocumentNotFoundError
from docrag.models.document import DocumentStatus
from docrag.services.chat_processor import ChatProcessor
from docrag.services.retrieval import RetrievalService


@pytest.fixture
def ingestion_client() -> TestClient:
    # No context manager: the lifespan would connect to Kafka and the stores
    return TestClient(ingestion_service.app)


@pytest.fixture
def chat_client() -> TestClient:
    return TestClient(chat_service.app)


class TestStepsEndpoint:

    def test_invalid_step_is_rejected(self, ingestion_client: TestClient) -> None:
        response = ingestion_client.post("/steps", json={"action": "explode", "payload": {"documentId": "d"}})
        assert response.status_code == 400
        assert response.json()["detail"]["errorCode"] == "INVALID_PARAMETER"

    def test_missing_document(self, ingestion_client: TestClient, monkeypatch) -> None:
        monkeypatch.setattr(
            services.step_processor,
            "update_status",
            AsyncMock(side_effect=DocumentNotFoundError("Document d not found")),
        )
        response = ingestion_client.post(
            "/steps", json={"action": "updateStatus", "status": "PROCESSING", "payload": {"documentId": "d"}}
        )
        assert response.status_code == 404


class TestDeleteEndpoint:

    def test_requires_owner(self, ingestion_client: TestClient) -> None:
        assert ingestion_client.delete("/documents/doc-1").status_code == 401

    def test_returns_final_status(self, ingestion_client: TestClient, monkeypatch) -> None:
        delete = AsyncMock(return_value=DocumentStatus.DELETED)
        monkeypatch.setattr(services.cleanup, "delete_document", delete)

        response = ingestion_client.delete("/documents/doc-1", headers={"X-Owner-Id": "owner-1"})

        assert response.status_code == 200
        assert response.json() == {"documentId": "doc-1", "status": "DELETED"}
        delete.assert_awaited_once_with("doc-1", "owner-1")


class TestChatEndpoint:

    def test_requires_owner(self, chat_client: TestClient) -> None:
        response = chat_client.post(
            "/chat/stream",
            json={"messages": [{"role": "user", "parts": [{"type": "text", "text": "q"}]}], "sessionId": "s"},
        )
        assert response.status_code == 401

    def test_streams_events(self, chat_client: TestClient, monkeypatch) -> None:
        processor = ChatProcessor(
            RetrievalService(FakeEmbedding(), FakeVectorDB([make_match("parent", "a.pdf", 0.9)])),
            FakeLLM(["Hello"]),
            FakeChatHistory(),
        )
        monkeypatch.setattr(services, "chat_processor", processor)

        response = chat_client.post(
            "/chat/stream",
            json={"messages": [{"role": "user", "parts": [{"type": "text", "text": "q"}]}], "sessionId": "s"},
            headers={"X-Owner-Id": "owner-1"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert '"textDelta": "Hello"' in response.text
        assert response.text.endswith("data: [DONE]\n\n")
