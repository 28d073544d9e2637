"""Chat processing: retrieval, streamed generation and history persistence."""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from docrag.core.config import settings
from docrag.core.exceptions import DocRagError, InvalidRequestError
from docrag.models.chat import ChatStreamRequest, Citation
from docrag.monitoring.metrics import chat_errors_total, chat_latency_seconds, chat_requests_total
from docrag.services.chat_history import ChatHistoryRepository
from docrag.services.llm import LLMService
from docrag.services.prompts import build_rag_prompt, extract_answer_from_stream, select_cited_citations
from docrag.services.retrieval import RetrievalService
from docrag.services.stream import (
    StreamWriter,
    stream_citations,
    stream_done,
    stream_error,
    stream_finish,
    stream_session_info,
    stream_text_delta,
)

logger = logging.getLogger(__name__)


def extract_query(request: ChatStreamRequest) -> str:
    """
    Return the text of the latest user message.

    Raises:
        InvalidRequestError: If no user message carries text.
    """
    for message in reversed(request.messages):
        if message.role != "user":
            continue
        texts = [part.text for part in message.parts if part.type == "text"]
        if texts:
            return "".join(texts)
    raise InvalidRequestError("No user query in request")


class ChatProcessor:
    """Answers one chat turn over a stream writer."""

    def __init__(
        self,
        retrieval: RetrievalService,
        llm_service: LLMService,
        history: ChatHistoryRepository,
        enable_thinking: Optional[bool] = None,
    ) -> None:
        """
        Initialize chat processor.

        Args:
            retrieval: Owner-scoped retrieval service.
            llm_service: Streaming LLM service.
            history: Session and message persistence.
            enable_thinking: Use the <thinking>/<answer> prompt variant.
        """
        self.retrieval = retrieval
        self.llm_service = llm_service
        self.history = history
        self.enable_thinking = settings.enable_thinking if enable_thinking is None else enable_thinking

    async def stream_chat(
        self, request: ChatStreamRequest, owner_id: str, writer: StreamWriter
    ) -> None:
        """
        Answer a chat turn.

        Emits ``citations``, then ``text-delta`` events as tokens arrive,
        then ``session_info`` and ``finish`` once history is stored. On a
        failure an ``error`` event ends the stream instead; if any token was
        generated the partial answer is stored first under the same history
        id, so a redo overwrites it.

        Args:
            request: Validated chat request.
            owner_id: Caller, scoping both retrieval and history.
            writer: Destination of the protocol events.
        """
        chat_requests_total.inc()
        start_time = time.time()

        session_id = request.session_id
        history_id = request.redo_history_id or str(uuid.uuid4())
        created_at = datetime.now(timezone.utc)

        query = ""
        full_text = ""
        visible_text = ""
        citations: List[Citation] = []

        try:
            query = extract_query(request)

            citations = await self.retrieval.retrieve(query, owner_id)
            stream_citations(writer, citations)

            prompt = build_rag_prompt(citations, query, enable_thinking=self.enable_thinking)

            async for fragment in self.llm_service.stream_response(
                prompt.user_prompt, prompt.system_prompt
            ):
                full_text += fragment
                if self.enable_thinking:
                    answer = extract_answer_from_stream(full_text)
                    delta = answer[len(visible_text):]
                    visible_text = answer
                else:
                    delta = fragment
                    visible_text = full_text
                if delta:
                    stream_text_delta(writer, delta)

            await self.history.save_exchange(
                history_id,
                session_id,
                owner_id,
                query,
                visible_text,
                select_cited_citations(citations, visible_text),
                created_at,
            )

            stream_session_info(writer, session_id, history_id, created_at.isoformat())
            stream_finish(writer, "stop")
        except Exception as e:
            chat_errors_total.inc()
            logger.error(
                f"Chat stream failed for session {session_id} (owner {owner_id}): {str(e)}"
            )
            if visible_text:
                await self._save_partial(
                    history_id, session_id, owner_id, query, visible_text, citations, created_at
                )
            error_code = e.error_code if isinstance(e, DocRagError) else "INTERNAL_SERVER_ERROR"
            stream_error(writer, error_code)
        finally:
            stream_done(writer)
            writer.end()
            chat_latency_seconds.observe(time.time() - start_time)

    async def _save_partial(
        self,
        history_id: str,
        session_id: str,
        owner_id: str,
        query: str,
        answer: str,
        citations: List[Citation],
        created_at: datetime,
    ) -> None:
        try:
            await self.history.save_exchange(
                history_id,
                session_id,
                owner_id,
                query,
                answer,
                select_cited_citations(citations, answer),
                created_at,
            )
            logger.info(f"Saved partial answer {history_id} ({len(answer)} chars)")
        except Exception as save_error:
            logger.error(
                f"Failed to save partial history for session {session_id}: {str(save_error)}"
            )
