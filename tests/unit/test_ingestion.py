"""Unit tests for the ingestion runners and the upload trigger."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import (
    FakeChunkStore,
    FakeDocumentStore,
    FakeEmbedding,
    FakeObjectStore,
    FakeVectorDB,
    make_document,
)
from docrag.core.exceptions import IngestionRetryError
from docrag.models.document import DocumentStatus
from docrag.models.event import TriggerMessage
from docrag.services.ingestion import (
    TIMEOUT_MESSAGE,
    DirectIngestionRunner,
    DurableIngestionRunner,
    UploadTrigger,
)
from docrag.services.processor import StepProcessor
from docrag.services.workflow import ExecutionResult, WorkflowClient

KEY = "uploads/owner-1/doc-1"


def _direct_runner(documents: FakeDocumentStore, data: bytes = b"some text " * 100) -> DirectIngestionRunner:
    processor = StepProcessor(
        documents,
        FakeObjectStore({("bucket", KEY): data}),
        FakeChunkStore(),
        FakeEmbedding(),
        FakeVectorDB(),
    )
    return DirectIngestionRunner(processor)


def _workflow(result: ExecutionResult) -> MagicMock:
    workflow = MagicMock()
    workflow.start_sync_execution = AsyncMock(return_value=result)
    return workflow


def _s3_message(message_id: str, *keys: str) -> TriggerMessage:
    return TriggerMessage(
        message_id=message_id,
        body={"Records": [{"s3": {"bucket": {"name": "bucket"}, "object": {"key": key}}} for key in keys]},
    )


class TestDirectIngestionRunner:

    @pytest.mark.asyncio
    async def test_happy_path(self) -> None:
        documents = FakeDocumentStore([make_document()])
        status = await _direct_runner(documents).run("bucket", KEY, "doc-1")

        assert status == DocumentStatus.COMPLETED
        assert [call[1] for call in documents.status_calls] == [
            DocumentStatus.PROCESSING,
            DocumentStatus.COMPLETED,
        ]

    @pytest.mark.asyncio
    async def test_step_failure_records_failed(self) -> None:
        documents = FakeDocumentStore([make_document(content_type="image/png")])
        status = await _direct_runner(documents).run("bucket", KEY, "doc-1")

        assert status == DocumentStatus.FAILED
        assert documents.documents["doc-1"].status == DocumentStatus.FAILED
        assert "Unsupported content type" in documents.documents["doc-1"].error_message

    @pytest.mark.asyncio
    async def test_failed_status_write_asks_for_retry(self) -> None:
        documents = FakeDocumentStore([make_document(content_type="image/png")])
        documents.fail_on = DocumentStatus.FAILED

        with pytest.raises(IngestionRetryError):
            await _direct_runner(documents).run("bucket", KEY, "doc-1")


class TestDurableIngestionRunner:

    @pytest.mark.asyncio
    async def test_succeeded(self) -> None:
        documents = FakeDocumentStore([make_document()])
        runner = DurableIngestionRunner(_workflow(ExecutionResult(status="SUCCEEDED")), documents)

        assert await runner.run("bucket", KEY, "doc-1") == DocumentStatus.COMPLETED
        assert documents.status_calls == []

    @pytest.mark.asyncio
    async def test_timed_out_and_failed_messages_differ(self) -> None:
        documents = FakeDocumentStore([make_document()])
        timed_out = DurableIngestionRunner(_workflow(ExecutionResult(status=WorkflowClient.TIMED_OUT)), documents)
        failed = DurableIngestionRunner(
            _workflow(ExecutionResult(status=WorkflowClient.FAILED, error="States.TaskFailed", cause="bad pdf")),
            documents,
        )

        await timed_out.run("bucket", KEY, "doc-1")
        await failed.run("bucket", KEY, "doc-1")

        messages = [call[2] for call in documents.status_calls]
        assert messages[0] == TIMEOUT_MESSAGE
        assert "bad pdf" in messages[1]
        assert messages[0] != messages[1]

    @pytest.mark.asyncio
    async def test_failed_status_write_asks_for_retry(self) -> None:
        documents = FakeDocumentStore([make_document()])
        documents.fail_on = DocumentStatus.FAILED
        runner = DurableIngestionRunner(_workflow(ExecutionResult(status="FAILED")), documents)

        with pytest.raises(IngestionRetryError):
            await runner.run("bucket", KEY, "doc-1")


class TestUploadTrigger:

    @pytest.mark.asyncio
    async def test_decodes_key_and_runs(self) -> None:
        runner = MagicMock()
        runner.run = AsyncMock(return_value=DocumentStatus.COMPLETED)

        failures = await UploadTrigger(runner).handle_batch(
            [_s3_message("m1", "uploads/owner+1/doc%2D1")]
        )

        assert failures == []
        runner.run.assert_awaited_once_with("bucket", "uploads/owner 1/doc-1", "doc-1")

    @pytest.mark.asyncio
    async def test_invalid_key_is_skipped_not_retried(self) -> None:
        runner = MagicMock()
        runner.run = AsyncMock()

        failures = await UploadTrigger(runner).handle_batch([_s3_message("m1", "other/place/file.pdf")])

        assert failures == []
        runner.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failures_are_isolated_per_object(self) -> None:
        runner = MagicMock()
        runner.run = AsyncMock(
            side_effect=[IngestionRetryError("db down"), DocumentStatus.COMPLETED, DocumentStatus.COMPLETED]
        )

        failures = await UploadTrigger(runner).handle_batch(
            [
                _s3_message("m1", "uploads/o/doc-a", "uploads/o/doc-b"),
                _s3_message("m2", "uploads/o/doc-c"),
            ]
        )

        assert failures == ["m1"]
        assert runner.run.await_count == 3

    @pytest.mark.asyncio
    async def test_flat_event_body(self) -> None:
        runner = MagicMock()
        runner.run = AsyncMock(return_value=DocumentStatus.COMPLETED)
        message = TriggerMessage(message_id="m1", body={"bucket": "bucket", "key": KEY})

        await UploadTrigger(runner).handle_batch([message])

        runner.run.assert_awaited_once_with("bucket", KEY, "doc-1")
