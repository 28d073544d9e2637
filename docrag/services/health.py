"""Dependency health probes."""

import asyncio
import time
from typing import Any, Dict

from aiokafka import AIOKafkaConsumer

from docrag.core.config import settings
from docrag.core.secrets import SecretCache
from docrag.services.chunk_store import ChunkStore
from docrag.services.database import DatabaseService
from docrag.services.vector_db import VectorDBService


def _healthy(start_time: float, **extra: Any) -> Dict[str, Any]:
    return {"status": "healthy", "latency_ms": round((time.time() - start_time) * 1000, 2), **extra}


def _unhealthy(error: str) -> Dict[str, Any]:
    return {"status": "unhealthy", "error": error, "latency_ms": 0}


async def check_qdrant(vector_db: VectorDBService) -> Dict[str, Any]:
    """Check Qdrant connectivity and that the collection exists."""
    if not vector_db.client:
        return _unhealthy("Not connected")
    try:
        start_time = time.time()
        exists = await vector_db.client.collection_exists(vector_db.collection_name)
        if not exists:
            return _unhealthy(f"Collection {vector_db.collection_name} missing")
        return _healthy(start_time)
    except Exception as e:
        return _unhealthy(str(e))


async def check_redis(chunk_store: ChunkStore) -> Dict[str, Any]:
    """Check the chunk store's Redis connection."""
    if not chunk_store.client:
        return _unhealthy("Not connected")
    try:
        start_time = time.time()
        await chunk_store.client.ping()
        return _healthy(start_time)
    except Exception as e:
        return _unhealthy(str(e))


async def check_postgres(database: DatabaseService) -> Dict[str, Any]:
    """Check PostgreSQL through the shared pool."""
    if not database.pool:
        return _unhealthy("Not connected")
    try:
        start_time = time.time()
        async with database.pool.acquire() as conn:
            await conn.execute("SELECT 1")
        return _healthy(start_time)
    except Exception as e:
        return _unhealthy(str(e))


async def check_openai(secrets: SecretCache) -> Dict[str, Any]:
    """Check that the OpenAI key is configured and accepted."""
    api_key = secrets.get_optional("openai_api_key")
    if not api_key:
        return {"status": "not_configured", "error": "API key not set"}

    from openai import AsyncOpenAI

    try:
        start_time = time.time()
        await AsyncOpenAI(api_key=api_key).models.list()
        return _healthy(start_time)
    except Exception as e:
        error_msg = str(e).lower()
        if "api key" in error_msg or "authentication" in error_msg:
            return _unhealthy("Invalid API key")
        return _unhealthy(str(e))


async def check_kafka() -> Dict[str, Any]:
    """Check that the Kafka bootstrap servers accept a connection."""
    consumer = AIOKafkaConsumer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_auto_commit=False,
    )
    try:
        start_time = time.time()
        await consumer.start()
        result = _healthy(start_time)
    except Exception as e:
        return _unhealthy(str(e))

    try:
        await asyncio.wait_for(consumer.stop(), timeout=1.0)
    except asyncio.TimeoutError:
        pass
    return result
