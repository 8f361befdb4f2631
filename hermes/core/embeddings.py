"""OpenAI / Azure OpenAI embeddings generation with validation."""

from enum import Enum
from typing import Protocol

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from hermes.core.config import Settings, get_settings
from hermes.core.logging import get_logger

logger = get_logger(__name__)

# OpenAI accepts up to 2048 inputs per embeddings request
MAX_BATCH_SIZE = 2048


class IntegrationErrorCode(str, Enum):
    """Failure categories for calls to external services."""

    SERVICE_ERROR = "service_error"
    AUTHENTICATION_ERROR = "authentication_error"
    UNEXPECTED_ERROR = "unexpected_error"


class IntegrationError(Exception):
    """Error raised when an external service call fails."""

    def __init__(self, message: str, code: IntegrationErrorCode):
        super().__init__(message)
        self.code = code


class EmbeddingClient(Protocol):
    """Text to vector generation used by the context selector."""

    async def generate_embedding(self, text: str) -> list[float]:
        ...

    async def generate_batch_embeddings(self, texts: list[str]) -> dict[str, list[float]]:
        ...


def _get_client(settings: Settings) -> AsyncOpenAI:
    """Get an async OpenAI client, Azure-flavoured when an endpoint is configured."""
    if settings.AZURE_OPENAI_ENDPOINT:
        return AsyncAzureOpenAI(
            api_key=settings.OPENAI_API_KEY,
            azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
            api_version=settings.AZURE_OPENAI_API_VERSION,
        )
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)


def _wrap_error(e: Exception, description: str) -> IntegrationError:
    if isinstance(e, openai.AuthenticationError):
        code = IntegrationErrorCode.AUTHENTICATION_ERROR
    elif isinstance(e, openai.OpenAIError):
        code = IntegrationErrorCode.SERVICE_ERROR
    else:
        code = IntegrationErrorCode.UNEXPECTED_ERROR
    return IntegrationError(f"{description}: {e}", code)


class OpenAIEmbeddingClient:
    """Embedding client backed by the OpenAI embeddings API."""

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None):
        self._settings = settings or get_settings()
        self._client = client or _get_client(self._settings)

    @property
    def model(self) -> str:
        return self._settings.EMBEDDING_MODEL

    def _validate(self, embedding: list[float], index: int) -> list[float]:
        expected = self._settings.EMBEDDING_DIM
        if len(embedding) != expected:
            raise ValueError(
                f"Embedding dimension mismatch for text {index}: "
                f"expected {expected}, got {len(embedding)}"
            )
        return embedding

    async def generate_embedding(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ValueError: If text is blank or the vector has the wrong dimension
            IntegrationError: If the OpenAI API call fails
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        try:
            response = await self._client.embeddings.create(model=self.model, input=[text])
        except Exception as e:
            logger.error(f"Failed to generate embedding for text of length {len(text)}: {e}")
            raise _wrap_error(e, "Embedding request failed") from e

        return self._validate(response.data[0].embedding, 0)

    async def generate_batch_embeddings(self, texts: list[str]) -> dict[str, list[float]]:
        """
        Generate embeddings for many texts, batching API calls.

        Duplicate texts are embedded once.

        Args:
            texts: Texts to embed

        Returns:
            Mapping of each text to its embedding vector

        Raises:
            ValueError: If a returned vector has the wrong dimension
            IntegrationError: If an OpenAI API call fails
        """
        unique_texts = list(dict.fromkeys(texts))
        if not unique_texts:
            return {}

        result: dict[str, list[float]] = {}
        for start in range(0, len(unique_texts), MAX_BATCH_SIZE):
            batch = unique_texts[start : start + MAX_BATCH_SIZE]
            try:
                response = await self._client.embeddings.create(model=self.model, input=batch)
            except Exception as e:
                logger.error(f"Failed to generate batch embeddings for {len(batch)} texts: {e}")
                raise _wrap_error(e, "Batch embedding request failed") from e

            for offset, embedding_obj in enumerate(response.data):
                result[batch[offset]] = self._validate(embedding_obj.embedding, start + offset)

        logger.info(
            f"Generated {len(result)} embeddings using {self.model}",
            extra={"extra_data": {"model": self.model, "count": len(result)}},
        )
        return result
