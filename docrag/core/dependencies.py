"""Dependency injection for services."""

import logging

from docrag.core.config import settings
from docrag.core.secrets import SecretCache
from docrag.services.chat_history import ChatHistoryRepository
from docrag.services.chat_processor import ChatProcessor
from docrag.services.chunk_store import ChunkStore
from docrag.services.cleanup import DocumentCleanupService
from docrag.services.database import DatabaseService, DocumentRepository
from docrag.services.dlq import RetryPublisher
from docrag.services.embedding import EmbeddingService
from docrag.services.ingestion import (
    DirectIngestionRunner,
    DurableIngestionRunner,
    IngestionRunner,
    UploadTrigger,
)
from docrag.services.llm import LLMService
from docrag.services.object_store import ObjectStore
from docrag.services.processor import StepProcessor
from docrag.services.retrieval import RetrievalService
from docrag.services.vector_db import VectorDBService
from docrag.services.workflow import WorkflowClient

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Container for service instances."""

    def __init__(self) -> None:
        """Initialize service container."""
        self.secrets = SecretCache()
        self.database = DatabaseService()
        self.vector_db = VectorDBService(secrets=self.secrets)
        self.embedding_service = EmbeddingService(secrets=self.secrets)
        self.llm_service = LLMService(secrets=self.secrets)
        self.chunk_store = ChunkStore()
        self.object_store = ObjectStore()
        self.retry_publisher = RetryPublisher()

        self.documents = DocumentRepository(self.database)
        self.history = ChatHistoryRepository(self.database)
        self.retrieval = RetrievalService(self.embedding_service, self.vector_db)
        self.chat_processor = ChatProcessor(self.retrieval, self.llm_service, self.history)
        self.step_processor = StepProcessor(
            self.documents,
            self.object_store,
            self.chunk_store,
            self.embedding_service,
            self.vector_db,
        )
        self.cleanup = DocumentCleanupService(
            self.documents, self.vector_db, self.object_store, settings.document_bucket
        )
        self.workflow = WorkflowClient() if settings.workflow_url else None
        self.upload_trigger = UploadTrigger(self.build_ingestion_runner())

    def build_ingestion_runner(self) -> IngestionRunner:
        """Durable runner when a workflow backend is configured, direct otherwise."""
        if self.workflow:
            logger.info(f"Ingestion runs on state machine {self.workflow.state_machine}")
            return DurableIngestionRunner(self.workflow, self.documents)
        logger.info("Ingestion runs steps in-process")
        return DirectIngestionRunner(self.step_processor)

    async def initialize(self, with_retry_publisher: bool = False) -> None:
        """Initialize all services."""
        await self.vector_db.connect()
        await self.chunk_store.connect()
        await self.database.connect()
        if with_retry_publisher:
            await self.retry_publisher.connect()

    async def shutdown(self) -> None:
        """Shutdown all services."""
        await self.retry_publisher.disconnect()
        if self.workflow:
            await self.workflow.close()
        await self.database.disconnect()
        await self.vector_db.disconnect()
        await self.chunk_store.disconnect()


services = ServiceContainer()
