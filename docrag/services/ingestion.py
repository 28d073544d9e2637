"""Ingestion orchestration: trigger handling and the two execution strategies."""

import logging
import time
from typing import List, Protocol

from docrag.core.exceptions import IngestionRetryError, InvalidUploadKeyError
from docrag.models.document import DocumentStatus
from docrag.models.event import TriggerMessage, UploadedObject
from docrag.monitoring.metrics import (
    ingestion_duration_seconds,
    ingestion_failures_total,
    ingestion_skipped_total,
    ingestions_total,
)
from docrag.services.processor import DocumentStore, StepProcessor
from docrag.services.workflow import WorkflowClient

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Document processing timed out"
FAILURE_MESSAGE = "Document processing failed"


class IngestionRunner(Protocol):
    """Drives one document through PROCESSING to COMPLETED or FAILED."""

    async def run(self, bucket: str, key: str, document_id: str) -> DocumentStatus:
        """
        Ingest one uploaded object.

        Returns:
            Final status.

        Raises:
            IngestionRetryError: If a failure could not be recorded.
        """
        ...


class DirectIngestionRunner:
    """Runs the four steps in sequence by direct call."""

    def __init__(self, processor: StepProcessor) -> None:
        self.processor = processor

    async def run(self, bucket: str, key: str, document_id: str) -> DocumentStatus:
        try:
            await self.processor.handle(
                {"action": "updateStatus", "status": "PROCESSING", "payload": {"documentId": document_id}}
            )
            extracted = await self.processor.handle(
                {
                    "action": "extractAndChunk",
                    "payload": {"documentId": document_id, "bucket": bucket, "key": key},
                }
            )
            await self.processor.handle(
                {
                    "action": "embedAndUpsert",
                    "payload": {"documentId": document_id, "chunksRef": extracted.chunks_ref},
                }
            )
            await self.processor.handle(
                {"action": "updateStatus", "status": "COMPLETED", "payload": {"documentId": document_id}}
            )
            return DocumentStatus.COMPLETED
        except Exception as e:
            logger.error(f"Processing failed for document {document_id}: {str(e)}")
            ingestion_failures_total.inc()
            try:
                await self.processor.handle(
                    {
                        "action": "updateStatus",
                        "status": "FAILED",
                        "payload": {"documentId": document_id},
                        "error": {"message": str(e) or type(e).__name__},
                    }
                )
            except Exception as update_error:
                logger.error(
                    f"Failed to record FAILED for document {document_id}: {str(update_error)}")
                raise IngestionRetryError(
                    f"Could not record failure for document {document_id}") from update_error
            return DocumentStatus.FAILED


class DurableIngestionRunner:
    """Runs the ingestion state machine on the durable execution backend."""

    def __init__(self, workflow: WorkflowClient, documents: DocumentStore) -> None:
        self.workflow = workflow
        self.documents = documents

    async def run(self, bucket: str, key: str, document_id: str) -> DocumentStatus:
        result = await self.workflow.start_sync_execution(bucket, key, document_id)
        if result.status == WorkflowClient.SUCCEEDED:
            return DocumentStatus.COMPLETED

        if result.status == WorkflowClient.TIMED_OUT:
            message = TIMEOUT_MESSAGE
        else:
            details = result.cause or result.error or result.status
            message = f"{FAILURE_MESSAGE}: {details}"

        logger.error(f"Execution {result.status} for document {document_id}: {message}")
        ingestion_failures_total.inc()
        try:
            await self.documents.update_status(document_id, DocumentStatus.FAILED, message)
        except Exception as update_error:
            logger.error(
                f"Failed to record FAILED for document {document_id}: {str(update_error)}")
            raise IngestionRetryError(
                f"Could not record failure for document {document_id}") from update_error
        return DocumentStatus.FAILED


class UploadTrigger:
    """Turns upload notifications into ingestion runs."""

    def __init__(self, runner: IngestionRunner) -> None:
        self.runner = runner

    async def handle_object(self, uploaded: UploadedObject) -> None:
        """
        Ingest one object; malformed keys are skipped, never retried.

        Raises:
            Exception: Whatever the runner raises; the trigger should be retried.
        """
        try:
            document_id = uploaded.require_document_id()
        except InvalidUploadKeyError as e:
            ingestion_skipped_total.inc()
            logger.warning(f"Skipping upload event: {str(e)}")
            return

        ingestions_total.inc()
        start_time = time.time()
        status = await self.runner.run(uploaded.bucket, uploaded.key, document_id)
        ingestion_duration_seconds.observe(time.time() - start_time)
        logger.info(f"Ingestion of document {document_id} ended with {status.value}")

    async def handle_batch(self, messages: List[TriggerMessage]) -> List[str]:
        """
        Process a batch of trigger messages.

        Each object is processed independently; a failure never stops its
        siblings.

        Args:
            messages: Trigger messages.

        Returns:
            Ids of the messages that must be re-delivered.
        """
        failures: List[str] = []
        for message in messages:
            failed = False
            try:
                objects = message.get_objects()
            except Exception as e:
                logger.error(f"Failed to parse message {message.message_id}: {str(e)}")
                failures.append(message.message_id)
                continue

            for uploaded in objects:
                try:
                    await self.handle_object(uploaded)
                except Exception as e:
                    logger.error(
                        f"Failed to process object {uploaded.key!r} "
                        f"in message {message.message_id}: {str(e)}"
                    )
                    failed = True

            if failed:
                failures.append(message.message_id)
        return failures
