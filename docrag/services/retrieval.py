"""Owner-scoped retrieval with parent-text de-duplication."""

import logging
from typing import List, Optional

from docrag.core.config import settings
from docrag.models.chat import Citation
from docrag.models.document import VectorMatch
from docrag.services.embedding import EmbeddingService
from docrag.services.vector_db import VectorDBService

logger = logging.getLogger(__name__)


def deduplicate_matches(matches: List[VectorMatch]) -> List[Citation]:
    """
    Collapse matches that share the same parent text.

    The first (highest-ranked) occurrence keeps its metadata and the
    survivors stay in rank order. Matches without text are dropped.

    Args:
        matches: Ranked similarity matches.

    Returns:
        Citations, one per distinct parent text.
    """
    seen = set()
    citations: List[Citation] = []
    for match in matches:
        text = match.metadata.text
        if not text or text in seen:
            continue
        seen.add(text)
        citations.append(
            Citation(
                text=text,
                file_name=match.metadata.file_name,
                document_id=match.metadata.document_id,
                score=match.score,
            )
        )
    return citations


class RetrievalService:
    """Embeds a query and returns deduplicated context for one owner."""

    def __init__(self, embedding_service: EmbeddingService, vector_db: VectorDBService) -> None:
        self.embedding_service = embedding_service
        self.vector_db = vector_db

    async def retrieve(self, query: str, owner_id: str, top_k: Optional[int] = None) -> List[Citation]:
        """
        Retrieve context for a query.

        Args:
            query: User question.
            owner_id: Only this owner's vectors are searched.
            top_k: Number of raw matches to fetch.

        Returns:
            Deduplicated citations in rank order.
        """
        query_embedding = await self.embedding_service.generate_embedding(query)
        matches = await self.vector_db.search_by_owner(
            query_embedding, owner_id, top_k=top_k or settings.top_k
        )
        citations = deduplicate_matches(matches)
        logger.info(
            f"Retrieved {len(matches)} matches, {len(citations)} distinct parents for owner {owner_id}"
        )
        return citations
