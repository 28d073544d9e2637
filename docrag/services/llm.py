"""OpenAI LLM service for streamed answer generation."""

from typing import AsyncIterator, Optional

from openai import AsyncOpenAI

from docrag.core.config import settings
from docrag.core.exceptions import LLMError
from docrag.core.secrets import SecretCache


class LLMService:
    """Service for streaming LLM responses."""

    def __init__(
        self,
        secrets: Optional[SecretCache] = None,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        """Initialize the LLM service."""
        self.secrets = secrets or SecretCache()
        self.client = client
        self.model = settings.llm_model
        self.max_tokens = settings.llm_max_tokens
        self.temperature = settings.llm_temperature

    def _get_client(self) -> AsyncOpenAI:
        if self.client is None:
            self.client = AsyncOpenAI(api_key=self.secrets.get("openai_api_key"))
        return self.client

    async def stream_response(
        self, prompt: str, system_prompt: Optional[str] = None
    ) -> AsyncIterator[str]:
        """
        Stream a response as text fragments.

        The sequence is finite and cannot be restarted.

        Args:
            prompt: User prompt.
            system_prompt: Optional system prompt.

        Yields:
            Text fragments in generation order.

        Raises:
            LLMError: If the request or the stream fails.
        """
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        try:
            stream = await self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                content = chunk.choices[0].delta.content
                if content:
                    yield content
        except LLMError:
            raise
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e
