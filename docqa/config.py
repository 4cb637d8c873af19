"""Application configuration with sensible defaults.

Defaults live here as module constants. Runtime values are collected into an
explicit Settings object that is passed to the service clients and the
pipeline; nothing else reads the environment.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from docqa.errors import ConfigError

PROVIDERS = ("openai", "ollama")
DEFAULT_PROVIDER = "openai"

# OpenAI-compatible API
OPENAI_BASE_URL = "https://api.openai.com/v1"
OPENAI_CHAT_MODEL = "gpt-4o-mini"
OPENAI_EMBEDDING_MODEL = "text-embedding-3-large"

# Ollama configuration
OLLAMA_BASE_URL = "http://localhost:11434"
OLLAMA_CHAT_MODEL = "llama3.1"
OLLAMA_EMBEDDING_MODEL = "mxbai-embed-large"

# Generation
TEMPERATURE = 0.0
REQUEST_TIMEOUT = 60.0

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = 1000
CHUNK_OVERLAP = 200
RETRIEVAL_TOP_K = 4
EMBEDDING_BATCH_SIZE = 64

# Logging
LOG_LEVEL = "WARNING"


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Everything the services and the pipeline need to run."""

    provider: str = DEFAULT_PROVIDER
    base_url: str = OPENAI_BASE_URL
    api_key: Optional[str] = None
    chat_model: str = OPENAI_CHAT_MODEL
    embedding_model: str = OPENAI_EMBEDDING_MODEL
    temperature: float = TEMPERATURE
    timeout: float = REQUEST_TIMEOUT
    chunk_size: int = CHUNK_SIZE
    chunk_overlap: int = CHUNK_OVERLAP
    top_k: int = RETRIEVAL_TOP_K
    embedding_batch_size: int = EMBEDDING_BATCH_SIZE
    log_level: str = LOG_LEVEL

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Settings with provider-specific defaults filled in

        Raises:
            ConfigError: If a numeric variable cannot be parsed
        """
        if environ is None:
            environ = os.environ

        provider = environ.get("LLM_PROVIDER", DEFAULT_PROVIDER).strip().lower()

        if provider == "ollama":
            base_url = environ.get("OLLAMA_BASE_URL", OLLAMA_BASE_URL)
            chat_model = OLLAMA_CHAT_MODEL
            embedding_model = OLLAMA_EMBEDDING_MODEL
        else:
            base_url = environ.get("OPENAI_BASE_URL", OPENAI_BASE_URL)
            chat_model = OPENAI_CHAT_MODEL
            embedding_model = OPENAI_EMBEDDING_MODEL

        return cls(
            provider=provider,
            base_url=base_url.rstrip("/"),
            api_key=environ.get("OPENAI_API_KEY") or None,
            chat_model=environ.get("CHAT_MODEL", chat_model),
            embedding_model=environ.get("EMBEDDING_MODEL", embedding_model),
            temperature=_get_float(environ, "TEMPERATURE", TEMPERATURE),
            timeout=_get_float(environ, "REQUEST_TIMEOUT", REQUEST_TIMEOUT),
            chunk_size=_get_int(environ, "CHUNK_SIZE", CHUNK_SIZE),
            chunk_overlap=_get_int(environ, "CHUNK_OVERLAP", CHUNK_OVERLAP),
            top_k=_get_int(environ, "RETRIEVAL_TOP_K", RETRIEVAL_TOP_K),
            embedding_batch_size=_get_int(
                environ, "EMBEDDING_BATCH_SIZE", EMBEDDING_BATCH_SIZE
            ),
            log_level=environ.get("LOG_LEVEL", LOG_LEVEL).upper(),
        )

    def validate(self) -> "Settings":
        """Check the settings are usable.

        Returns:
            self, so calls can be chained

        Raises:
            ConfigError: On the first invalid value found
        """
        if self.provider not in PROVIDERS:
            raise ConfigError(
                f"Unknown provider {self.provider!r}, expected one of {PROVIDERS}"
            )

        if self.provider == "openai" and not self.api_key:
            raise ConfigError("OPENAI_API_KEY is required for the openai provider")

        if self.chunk_size < 1:
            raise ConfigError(f"Chunk size must be positive, got {self.chunk_size}")

        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigError(
                f"Overlap ({self.chunk_overlap}) must be between 0 and "
                f"chunk size ({self.chunk_size})"
            )

        if self.top_k < 1:
            raise ConfigError(f"Top-k must be at least 1, got {self.top_k}")

        if self.embedding_batch_size < 1:
            raise ConfigError(
                f"Embedding batch size must be positive, got {self.embedding_batch_size}"
            )

        if self.timeout <= 0:
            raise ConfigError(f"Request timeout must be positive, got {self.timeout}")

        return self
