"""OpenAI embedding generation service."""

import asyncio
import logging
from typing import List, Optional

from openai import AsyncOpenAI

from docrag.core.config import settings
from docrag.core.exceptions import EmbeddingError, ThrottlingError
from docrag.core.secrets import SecretCache
from docrag.services.retry import is_throttling_error, retry_with_backoff

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Service for generating embeddings using OpenAI."""

    def __init__(
        self,
        secrets: Optional[SecretCache] = None,
        client: Optional[AsyncOpenAI] = None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
    ) -> None:
        """
        Initialize the embedding service.

        Args:
            secrets: Process-lifetime secret cache providing the API key.
            client: Pre-built client, used instead of one built from secrets.
            batch_size: Texts embedded concurrently per batch.
            batch_delay: Pause between batches in seconds.
        """
        self.secrets = secrets or SecretCache()
        self.client = client
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self.batch_size = max(1, batch_size or settings.embedding_batch_size)
        self.batch_delay = settings.embedding_batch_delay_seconds if batch_delay is None else batch_delay

    def _get_client(self) -> AsyncOpenAI:
        if self.client is None:
            self.client = AsyncOpenAI(api_key=self.secrets.get("openai_api_key"))
        return self.client

    async def _embed_one(self, text: str) -> List[float]:
        client = self._get_client()

        async def call() -> List[float]:
            response = await client.embeddings.create(
                model=self.model,
                input=[text],
                dimensions=self.dimensions,
            )
            return response.data[0].embedding

        try:
            return await retry_with_backoff(call)
        except EmbeddingError:
            raise
        except Exception as e:
            if is_throttling_error(e):
                raise ThrottlingError(
                    f"Embedding throttled after retries: {str(e)}") from e
            raise EmbeddingError(f"Failed to generate embeddings: {str(e)}") from e

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Texts are embedded in fixed-size batches: calls inside a batch run
        concurrently, batches run one after another with a short pause.

        Args:
            texts: List of text strings to embed.

        Returns:
            List of embedding vectors in input order.

        Raises:
            EmbeddingError: If any text fails with a non-throttling error or
                stays throttled after all retries.
        """
        embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            if start > 0 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)
            batch = texts[start:start + self.batch_size]
            embeddings.extend(await self._embed_batch(batch))

        logger.info(f"Generated {len(embeddings)} embeddings")
        return embeddings

    async def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        tasks = [asyncio.ensure_future(self._embed_one(text)) for text in batch]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # One failure aborts the batch; stop siblings still retrying
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Text string to embed.

        Returns:
            Embedding vector.
        """
        embeddings = await self.generate_embeddings([text])
        return embeddings[0]
