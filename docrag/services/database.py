"""Database service for PostgreSQL operations."""

import base64
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import asyncpg

from docrag.core.config import settings
from docrag.core.exceptions import DatabaseError, DocumentNotFoundError
from docrag.models.document import (
    PROCESSING_ACTIVE,
    TERMINAL_INGESTION_STATUSES,
    DocumentRecord,
    DocumentStatus,
)

logger = logging.getLogger(__name__)

ERROR_MESSAGE_MAX_CHARS = 1000

DOCUMENT_COLUMNS = """
    document_id, owner_id, file_name, content_type, file_size, tags, status,
    error_message, processing_status, object_key, created_at, updated_at,
    deleted_at, expires_at
"""


def encode_cursor(last_key: Any) -> str:
    """
    Encode the last-evaluated key of a page as an opaque cursor.

    Args:
        last_key: JSON-serialisable key.

    Returns:
        Base64 of the JSON-encoded key.
    """
    raw = json.dumps(last_key, ensure_ascii=False, separators=(",", ":"))
    return base64.b64encode(raw.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> Optional[Any]:
    """
    Decode a cursor produced by ``encode_cursor``.

    Malformed input yields None so pagination falls back to the first page.
    """
    if not cursor:
        return None
    try:
        return json.loads(base64.b64decode(cursor, validate=True).decode("utf-8"))
    except (ValueError, TypeError):
        return None


def _row_to_document(row: asyncpg.Record) -> DocumentRecord:
    data = dict(row)
    tags = data.get("tags")
    if isinstance(tags, str):
        data["tags"] = json.loads(tags)
    return DocumentRecord(**data)


class DatabaseService:
    """Service for PostgreSQL database operations."""

    def __init__(self) -> None:
        """Initialize database service."""
        self.pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create connection pool."""
        try:
            self.pool = await asyncpg.create_pool(
                settings.postgres_url,
                min_size=2,
                max_size=10,
            )
        except Exception as e:
            raise DatabaseError(
                f"Failed to connect to database: {str(e)}") from e

    async def disconnect(self) -> None:
        """Close connection pool."""
        if self.pool:
            await self.pool.close()

    def require_pool(self) -> asyncpg.Pool:
        """Return the pool or fail when not connected."""
        if not self.pool:
            raise DatabaseError("Database not connected")
        return self.pool


class DocumentRepository:
    """Reads and mutates document records."""

    def __init__(self, database: DatabaseService) -> None:
        self.database = database

    async def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        """
        Get a single document by ID.

        Args:
            document_id: Document ID.

        Returns:
            Document record or None if not found.
        """
        pool = self.database.require_pool()
        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {DOCUMENT_COLUMNS} FROM documents WHERE document_id = $1",
                    document_id,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to fetch document: {str(e)}") from e
        return _row_to_document(row) if row else None

    async def update_status(
        self,
        document_id: str,
        status: DocumentStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """
        Move a document to a new status.

        PROCESSING sets the ``processing_status`` marker that feeds the
        partial index of in-flight documents; COMPLETED and FAILED clear it.

        Args:
            document_id: Document ID.
            status: New status.
            error_message: Failure description, stored only for FAILED.

        Raises:
            DocumentNotFoundError: If no row was updated.
        """
        pool = self.database.require_pool()
        if status in TERMINAL_INGESTION_STATUSES:
            processing_status = None
        elif status == DocumentStatus.PROCESSING:
            processing_status = PROCESSING_ACTIVE
        else:
            processing_status = "KEEP"

        message = None
        if status == DocumentStatus.FAILED and error_message:
            message = error_message[:ERROR_MESSAGE_MAX_CHARS]

        try:
            async with pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE documents
                    SET status = $2,
                        error_message = CASE WHEN $2 = 'FAILED' THEN $3 ELSE error_message END,
                        processing_status = CASE WHEN $4::text = 'KEEP' THEN processing_status ELSE $4 END,
                        updated_at = now()
                    WHERE document_id = $1
                    """,
                    document_id,
                    status.value,
                    message,
                    processing_status,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to update document status: {str(e)}") from e

        if result == "UPDATE 0":
            raise DocumentNotFoundError(f"Document {document_id} not found")
        logger.info(f"Document {document_id} -> {status.value}")

    async def soft_delete(self, document_id: str) -> None:
        """Mark a document DELETED and schedule physical expiry."""
        pool = self.database.require_pool()
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(days=settings.soft_delete_retention_days)
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    UPDATE documents
                    SET status = 'DELETED', deleted_at = $2, expires_at = $3,
                        processing_status = NULL, updated_at = $2
                    WHERE document_id = $1
                    """,
                    document_id,
                    now,
                    expires_at,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to delete document: {str(e)}") from e
