"""Script to create the document and chat history tables in PostgreSQL."""

import asyncio

import asyncpg

from docrag.core.config import settings

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS documents (
        document_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        file_name TEXT NOT NULL,
        content_type TEXT NOT NULL,
        file_size BIGINT NOT NULL DEFAULT 0,
        tags JSONB NOT NULL DEFAULT '[]'::jsonb,
        status TEXT NOT NULL DEFAULT 'PENDING_UPLOAD',
        error_message TEXT,
        processing_status TEXT,
        object_key TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        deleted_at TIMESTAMPTZ,
        expires_at TIMESTAMPTZ
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_owner ON documents (owner_id, created_at DESC)",
    """
    CREATE INDEX IF NOT EXISTS idx_documents_processing
    ON documents (processing_status, updated_at)
    WHERE processing_status IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_sessions (
        session_id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        session_name TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL,
        last_message_at TIMESTAMPTZ NOT NULL,
        list_owner_id TEXT,
        list_sort_at TIMESTAMPTZ
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chat_sessions_list
    ON chat_sessions (list_owner_id, list_sort_at DESC)
    WHERE list_owner_id IS NOT NULL
    """,
    """
    CREATE TABLE IF NOT EXISTS chat_messages (
        history_id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        user_query TEXT NOT NULL,
        ai_response TEXT NOT NULL,
        source_documents JSONB NOT NULL DEFAULT '[]'::jsonb,
        feedback TEXT NOT NULL DEFAULT 'NONE',
        feedback_comment TEXT,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_chat_messages_session
    ON chat_messages (session_id, created_at DESC, history_id DESC)
    """,
]


async def init_db() -> None:
    """Create tables and indexes if they do not exist."""
    conn = await asyncpg.connect(settings.postgres_url)
    try:
        async with conn.transaction():
            for statement in SCHEMA:
                await conn.execute(statement)
    finally:
        await conn.close()
    print(f"Applied {len(SCHEMA)} schema statements")


if __name__ == "__main__":
    asyncio.run(init_db())
