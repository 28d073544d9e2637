"""Ingestion Service: consumes upload events and runs the ingestion steps."""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional, Tuple

from aiokafka import AIOKafkaConsumer
from fastapi import FastAPI, Header, HTTPException
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from docrag.api.health import check_all_dependencies, check_readiness
from docrag.core.config import settings
from docrag.core.dependencies import services
from docrag.core.exceptions import DocRagError, DocumentNotFoundError, StepValidationError
from docrag.models.event import TriggerMessage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    await services.initialize(with_retry_publisher=True)
    consumer_task = asyncio.create_task(consume_upload_events())
    logger.info("Ingestion Service started")
    yield
    consumer_task.cancel()
    try:
        await consumer_task
    except asyncio.CancelledError:
        pass
    await services.shutdown()
    logger.info("Ingestion Service stopped")


app = FastAPI(title="Ingestion Service", lifespan=lifespan)


async def consume_upload_events() -> None:
    """Consume upload events and hand each polled batch to the trigger."""
    consumer = AIOKafkaConsumer(
        settings.kafka_topic_uploads,
        settings.ingestion_retry_topic,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_deserializer=lambda m: json.loads(m.decode("utf-8")),
        auto_offset_reset="earliest",
        enable_auto_commit=True,
        group_id=settings.kafka_consumer_group,
    )

    await consumer.start()
    logger.info(f"Started consuming from topic: {settings.kafka_topic_uploads}")

    try:
        while True:
            batches = await consumer.getmany(timeout_ms=1000, max_records=10)
            for records in batches.values():
                await process_records(records)
    finally:
        await consumer.stop()


def _unwrap(value: Any) -> Tuple[Optional[Dict[str, Any]], int, float]:
    """Return ``(body, attempt, not_before)``; plain upload events are attempt 0."""
    if isinstance(value, dict) and "original_event" in value:
        body = value["original_event"]
        return (
            body if isinstance(body, dict) else None,
            int(value.get("attempt") or 1),
            float(value.get("not_before") or 0.0),
        )
    return (value if isinstance(value, dict) else None), 0, 0.0


async def process_records(records: list) -> None:
    """Run one batch of Kafka records and re-publish the ones marked for retry."""
    messages = []
    by_id = {}
    attempts = {}
    not_before = 0.0
    for record in records:
        body, attempt, ready_at = _unwrap(record.value)
        if body is None:
            logger.warning(f"Message at offset {record.offset} is not an object, skipping")
            continue
        message_id = f"{record.topic}:{record.partition}:{record.offset}"
        messages.append(TriggerMessage(message_id=message_id, body=body))
        by_id[message_id] = record
        attempts[message_id] = attempt
        not_before = max(not_before, ready_at)

    wait = min(not_before - time.time(), settings.ingestion_retry_max_delay_seconds)
    if wait > 0:
        logger.info(f"Waiting {wait:.1f}s before re-running retried upload events")
        await asyncio.sleep(wait)

    failed_ids = await services.upload_trigger.handle_batch(messages)

    for message in messages:
        if message.message_id not in failed_ids:
            continue
        record = by_id[message.message_id]
        try:
            await services.retry_publisher.publish(
                event_data=message.body,
                error="Ingestion marked for retry",
                original_topic=record.topic,
                attempt=attempts[message.message_id] + 1,
                offset=record.offset,
                partition=record.partition,
            )
        except Exception as e:
            logger.error(f"Failed to publish retry for {message.message_id}: {str(e)}")


@app.post("/steps")
async def run_step(step: Dict[str, Any]) -> dict:
    """
    Execute one ingestion step for the state machine.

    Args:
        step: Step request ``{action, status?, error?, payload}``.

    Returns:
        The step's result.
    """
    try:
        result = await services.step_processor.handle(step)
    except StepValidationError as e:
        raise HTTPException(status_code=400, detail={"errorCode": e.error_code, "message": str(e)})
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail={"errorCode": e.error_code, "message": str(e)})
    except DocRagError as e:
        raise HTTPException(status_code=500, detail={"errorCode": e.error_code, "message": str(e)})
    return result.model_dump(by_alias=True)


@app.delete("/documents/{document_id}")
async def delete_document(document_id: str, x_owner_id: Optional[str] = Header(None)) -> dict:
    """
    Delete a document with its vectors and stored upload.

    Args:
        document_id: Document to delete.
        x_owner_id: Caller set by the auth layer.

    Returns:
        Final deletion status.
    """
    if not x_owner_id:
        raise HTTPException(status_code=401, detail="Missing owner")
    try:
        status = await services.cleanup.delete_document(document_id, x_owner_id)
    except DocumentNotFoundError:
        raise HTTPException(status_code=404, detail="Document not found")
    except DocRagError as e:
        logger.error(f"Failed to delete document {document_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=e.error_code)
    return {"documentId": document_id, "status": status.value}


@app.get("/health")
async def health() -> dict:
    """Health check endpoint with dependency verification."""
    result = await check_all_dependencies(services, include_kafka=True)
    return {"service": "ingestion-service", **result}


@app.get("/ready")
async def readiness() -> dict:
    """Readiness check endpoint."""
    result = await check_readiness(services, include_kafka=True)
    return {"service": "ingestion-service", **result}


@app.get("/metrics")
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
