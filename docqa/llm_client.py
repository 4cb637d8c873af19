"""Embedding and chat-completion clients with error handling.

Two HTTP backends are supported: an OpenAI-compatible API and a local Ollama
server. Both expose the same coroutine interface, described by the
EmbeddingService and GenerationService protocols.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Sequence, Type

import httpx
import structlog

from docqa.config import Settings
from docqa.errors import DocQAError, EmbeddingError, GenerationError

logger = structlog.get_logger()


class EmbeddingService(Protocol):
    """Maps text to fixed-dimension vectors."""

    async def embed(self, text: str) -> List[float]:
        ...

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class GenerationService(Protocol):
    """Produces a completion for a prompt."""

    async def complete(self, prompt: str) -> str:
        ...


class _HTTPClient(ABC):
    """Shared request handling for the HTTP backends."""

    def __init__(
        self,
        base_url: str,
        embedding_model: str,
        chat_model: str,
        temperature: float = 0.0,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL
            embedding_model: Model used for embeddings
            chat_model: Model used for completions
            temperature: Sampling temperature
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.temperature = temperature
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> Dict[str, str]:
        return {}

    async def _post(
        self, path: str, payload: Dict[str, Any], error_cls: Type[DocQAError]
    ) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded response.

        Raises:
            error_cls: On connection, HTTP status or decoding errors
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(url, json=payload, headers=self._headers())
                response.raise_for_status()
                return response.json()

        except httpx.ConnectError as e:
            logger.error("llm_connection_error", error=str(e), base_url=self.base_url)
            raise error_cls(f"Cannot connect to {self.base_url}: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "llm_http_error",
                error=str(e),
                status_code=e.response.status_code,
                path=path,
            )
            raise error_cls(
                f"{path} returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("llm_transport_error", error=str(e), path=path)
            raise error_cls(f"Request to {path} failed: {e}") from e
        except ValueError as e:
            logger.error("llm_invalid_json", error=str(e), path=path)
            raise error_cls(f"Invalid JSON from {path}") from e

    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        vectors = await self.embed_batch([text])
        return vectors[0]

    @abstractmethod
    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts, one vector per text in input order."""

    @abstractmethod
    async def complete(self, prompt: str) -> str:
        """Return the model's reply to a single-turn prompt."""


class OpenAIClient(_HTTPClient):
    """Async client for OpenAI-compatible embeddings and chat completions."""

    def __init__(self, base_url: str, api_key: str, **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.api_key = api_key

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed several texts in one request.

        Args:
            texts: Texts to embed

        Returns:
            One vector per text, in input order

        Raises:
            EmbeddingError: On API errors or a malformed response
        """
        if not texts:
            return []

        logger.debug(
            "openai_embedding_request",
            model=self.embedding_model,
            batch_size=len(texts),
        )

        data = await self._post(
            "/embeddings",
            {"model": self.embedding_model, "input": list(texts)},
            EmbeddingError,
        )

        try:
            items = sorted(data["data"], key=lambda item: item["index"])
            vectors = [item["embedding"] for item in items]
        except (KeyError, TypeError) as e:
            logger.error("openai_embedding_malformed", error=str(e))
            raise EmbeddingError("Malformed embedding response") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Expected {len(texts)} embeddings, got {len(vectors)}"
            )

        if any(not vector for vector in vectors):
            raise EmbeddingError("Empty embedding returned")

        logger.debug(
            "openai_embedding_response",
            model=self.embedding_model,
            dimension=len(vectors[0]),
        )

        return vectors

    async def complete(self, prompt: str) -> str:
        """Send a single-message chat completion request.

        Args:
            prompt: User message content

        Returns:
            Assistant message content

        Raises:
            GenerationError: On API errors or a malformed response
        """
        logger.info(
            "openai_chat_request",
            model=self.chat_model,
            prompt_length=len(prompt),
        )

        data = await self._post(
            "/chat/completions",
            {
                "model": self.chat_model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
            },
            GenerationError,
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error("openai_chat_malformed", error=str(e))
            raise GenerationError("Malformed chat completion response") from e

        if content is None:
            raise GenerationError("Chat completion returned no content")

        logger.info(
            "openai_chat_response",
            model=self.chat_model,
            response_length=len(content),
        )

        return content


class OllamaClient(_HTTPClient):
    """Async client for interacting with the Ollama API."""

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts one request at a time.

        Raises:
            EmbeddingError: On API errors or an empty embedding
        """
        vectors = []
        for text in texts:
            data = await self._post(
                "/api/embeddings",
                {"model": self.embedding_model, "prompt": text},
                EmbeddingError,
            )
            embedding = data.get("embedding") if isinstance(data, dict) else None

            if not embedding:
                logger.error(
                    "ollama_empty_embedding",
                    model=self.embedding_model,
                    text_preview=text[:100],
                )
                raise EmbeddingError("Empty embedding returned from Ollama")

            vectors.append(embedding)

        logger.debug(
            "ollama_embeddings_generated",
            model=self.embedding_model,
            count=len(vectors),
        )

        return vectors

    async def complete(self, prompt: str) -> str:
        """Send a non-streaming chat request.

        Raises:
            GenerationError: On API errors or a malformed response
        """
        logger.info(
            "ollama_chat_request",
            model=self.chat_model,
            prompt_length=len(prompt),
        )

        data = await self._post(
            "/api/chat",
            {
                "model": self.chat_model,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
                "options": {"temperature": self.temperature},
            },
            GenerationError,
        )

        try:
            content = data["message"]["content"]
        except (KeyError, TypeError) as e:
            logger.error("ollama_chat_malformed", error=str(e))
            raise GenerationError("Malformed chat response from Ollama") from e

        logger.info(
            "ollama_chat_response",
            model=self.chat_model,
            response_length=len(content),
        )

        return content


def create_client(
    settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None
) -> _HTTPClient:
    """Create the client for the configured provider.

    Args:
        settings: Validated settings
        transport: Optional httpx transport

    Returns:
        A client implementing both EmbeddingService and GenerationService
    """
    common = dict(
        embedding_model=settings.embedding_model,
        chat_model=settings.chat_model,
        temperature=settings.temperature,
        timeout=settings.timeout,
        transport=transport,
    )

    if settings.provider == "ollama":
        return OllamaClient(settings.base_url, **common)

    return OpenAIClient(settings.base_url, settings.api_key or "", **common)
