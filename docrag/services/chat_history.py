"""Chat session and message persistence."""

import asyncio
import json
import logging
from datetime import datetime
from typing import List, Optional

import asyncpg

from docrag.core.config import settings
from docrag.core.exceptions import DatabaseError
from docrag.models.chat import ChatMessage, Citation, MessagePage
from docrag.services.database import DatabaseService, decode_cursor, encode_cursor

logger = logging.getLogger(__name__)


def session_name_from_query(query: str, max_chars: Optional[int] = None) -> str:
    """Derive the initial session name from the first query."""
    limit = max_chars or settings.session_name_max_chars
    return f"{query[:limit]}..." if len(query) > limit else query


def _row_to_message(row: asyncpg.Record) -> ChatMessage:
    data = dict(row)
    sources = data.get("source_documents") or "[]"
    if isinstance(sources, str):
        sources = json.loads(sources)
    data["source_documents"] = [Citation.model_validate(item) for item in sources]
    return ChatMessage(**data)


class ChatHistoryRepository:
    """Persists chat sessions and messages in PostgreSQL."""

    def __init__(self, database: DatabaseService) -> None:
        self.database = database

    async def upsert_session(
        self, session_id: str, owner_id: str, query: str, created_at: datetime
    ) -> None:
        """
        Create the session header or touch it.

        The first write sets the name, creation time and the listing-index
        pointer; every write refreshes ``last_message_at`` and the listing
        sort key so sessions list by recency.
        """
        pool = self.database.require_pool()
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO chat_sessions (
                        session_id, owner_id, session_name, created_at,
                        last_message_at, list_owner_id, list_sort_at
                    )
                    VALUES ($1, $2, $3, $4, $4, $2, $4)
                    ON CONFLICT (session_id) DO UPDATE
                    SET last_message_at = EXCLUDED.last_message_at,
                        list_sort_at = EXCLUDED.last_message_at
                    WHERE chat_sessions.owner_id = EXCLUDED.owner_id
                    """,
                    session_id,
                    owner_id,
                    session_name_from_query(query),
                    created_at,
                )
        except Exception as e:
            logger.error(f"Failed to upsert session header {session_id}: {str(e)}")
            raise DatabaseError(f"Failed to upsert session: {str(e)}") from e

    async def save_message(
        self,
        history_id: str,
        session_id: str,
        owner_id: str,
        query: str,
        answer: str,
        citations: List[Citation],
        created_at: datetime,
    ) -> None:
        """
        Write a message, overwriting an existing one with the same history id.

        A redo keeps the original ``created_at`` and resets feedback.
        """
        pool = self.database.require_pool()
        sources = json.dumps([c.model_dump(by_alias=True) for c in citations], ensure_ascii=False)
        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO chat_messages (
                        history_id, session_id, owner_id, user_query, ai_response,
                        source_documents, feedback, created_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6::jsonb, 'NONE', $7)
                    ON CONFLICT (history_id) DO UPDATE
                    SET user_query = EXCLUDED.user_query,
                        ai_response = EXCLUDED.ai_response,
                        source_documents = EXCLUDED.source_documents,
                        feedback = 'NONE',
                        feedback_comment = NULL,
                        updated_at = EXCLUDED.created_at
                    WHERE chat_messages.owner_id = EXCLUDED.owner_id
                      AND chat_messages.session_id = EXCLUDED.session_id
                    """,
                    history_id,
                    session_id,
                    owner_id,
                    query,
                    answer,
                    sources,
                    created_at,
                )
        except Exception as e:
            raise DatabaseError(f"Failed to save message: {str(e)}") from e

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
        """Write the session header and the message; the two writes are independent."""
        await asyncio.gather(
            self.upsert_session(session_id, owner_id, query, created_at),
            self.save_message(
                history_id, session_id, owner_id, query, answer, citations, created_at
            ),
        )

    async def list_messages(
        self,
        session_id: str,
        owner_id: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
    ) -> MessagePage:
        """
        List a session's messages, newest first.

        Args:
            session_id: Session to read.
            owner_id: Caller; other owners' messages are never returned.
            limit: Page size, capped at ``history_max_limit``.
            cursor: Cursor from a previous page; malformed cursors restart
                from the first page.

        Returns:
            Page of messages with the cursor of the next page.
        """
        pool = self.database.require_pool()
        page_size = min(limit or settings.history_default_limit, settings.history_max_limit)

        start_key = decode_cursor(cursor)
        if not (isinstance(start_key, dict) and "createdAt" in start_key and "historyId" in start_key):
            start_key = None

        query = """
            SELECT history_id, session_id, owner_id, user_query, ai_response,
                   source_documents, feedback, feedback_comment, created_at, updated_at
            FROM chat_messages
            WHERE session_id = $1 AND owner_id = $2
        """
        params: list = [session_id, owner_id]
        if start_key:
            try:
                start_created_at = datetime.fromisoformat(start_key["createdAt"])
            except (TypeError, ValueError):
                start_created_at = None
            if start_created_at is not None:
                query += " AND (created_at, history_id) < ($3, $4)"
                params.extend([start_created_at, str(start_key["historyId"])])
        query += f" ORDER BY created_at DESC, history_id DESC LIMIT {page_size + 1}"

        try:
            async with pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
        except Exception as e:
            raise DatabaseError(f"Failed to fetch messages: {str(e)}") from e

        messages = [_row_to_message(row) for row in rows[:page_size]]
        next_cursor = None
        if len(rows) > page_size:
            last = messages[-1]
            next_cursor = encode_cursor(
                {"createdAt": last.created_at.isoformat(), "historyId": last.history_id}
            )
        return MessagePage(session_id=session_id, messages=messages, next_cursor=next_cursor)
