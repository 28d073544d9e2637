"""Aggregated health and readiness reports."""

from typing import Dict

from docrag.core.dependencies import ServiceContainer
from docrag.services.health import (
    check_kafka,
    check_openai,
    check_postgres,
    check_qdrant,
    check_redis,
)


async def check_all_dependencies(container: ServiceContainer, include_kafka: bool = False) -> Dict:
    """
    Check every dependency of a service.

    Args:
        container: Connected service container.
        include_kafka: Whether to check Kafka.

    Returns:
        Overall status and per-dependency details.
    """
    services = {
        "qdrant": await check_qdrant(container.vector_db),
        "redis": await check_redis(container.chunk_store),
        "postgres": await check_postgres(container.database),
        "openai": await check_openai(container.secrets),
    }
    if include_kafka:
        services["kafka"] = await check_kafka()

    # An unconfigured OpenAI key does not make the service unhealthy
    overall_status = "healthy"
    for status in services.values():
        if status.get("status") == "unhealthy":
            overall_status = "unhealthy"

    return {"status": overall_status, "services": services}


async def check_readiness(container: ServiceContainer, include_kafka: bool = False) -> Dict:
    """Report whether the stores a service cannot work without are reachable."""
    result = {
        "qdrant": (await check_qdrant(container.vector_db)).get("status") == "healthy",
        "redis": (await check_redis(container.chunk_store)).get("status") == "healthy",
        "postgres": (await check_postgres(container.database)).get("status") == "healthy",
    }
    if include_kafka:
        result["kafka"] = (await check_kafka()).get("status") == "healthy"

    result["ready"] = all(result.values())
    return result
