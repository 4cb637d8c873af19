"""In-memory FAISS vector index for cosine similarity search.

Handles:
- All-or-nothing index build from chunk embeddings
- Exact top-k cosine search with stable tie ordering
- Dimension validation

The index is built once and is read-only afterwards.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np
import structlog

from docqa import config
from docqa.errors import EmbeddingError, EmptyIndexError
from docqa.llm_client import EmbeddingService
from docqa.rag.documents import Chunk

logger = structlog.get_logger()


@dataclass(frozen=True)
class IndexEntry:
    """A chunk and the vector it was embedded to."""

    chunk: Chunk
    vector: Tuple[float, ...]


# Scores closer than this are the same similarity up to rounding
SCORE_TOLERANCE = 1e-9


def _normalize(vectors: np.ndarray) -> np.ndarray:
    """L2-normalize rows in float64; zero rows stay zero so their similarity is 0."""
    vectors = np.asarray(vectors, dtype=np.float64)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    return np.divide(vectors, norms, out=np.zeros_like(vectors), where=norms > 0)


class VectorIndex:
    """Exact cosine-similarity index over the chunks of one document."""

    def __init__(self, entries: Sequence[IndexEntry] = ()):
        """Create an index over already-embedded entries.

        Use VectorIndex.build() to embed chunks; calling the constructor with
        no arguments gives an empty index.

        Args:
            entries: Chunk/vector pairs, all of the same dimension

        Raises:
            ValueError: If the vectors differ in dimension or are empty
        """
        self._entries: Tuple[IndexEntry, ...] = tuple(entries)
        self.dimension: Optional[int] = None
        self._index: Optional[faiss.Index] = None
        self._unit: Optional[np.ndarray] = None

        if not self._entries:
            return

        dimensions = {len(entry.vector) for entry in self._entries}
        if len(dimensions) != 1 or 0 in dimensions:
            raise ValueError(f"Inconsistent embedding dimensions: {sorted(dimensions)}")

        self.dimension = dimensions.pop()

        # Inner product over unit vectors is cosine similarity
        self._unit = _normalize([entry.vector for entry in self._entries])
        self._index = faiss.IndexFlatIP(self.dimension)
        self._index.add(self._unit.astype(np.float32))

    @classmethod
    async def build(
        cls,
        chunks: Sequence[Chunk],
        embedder: EmbeddingService,
        batch_size: Optional[int] = None,
    ) -> "VectorIndex":
        """Embed every chunk and build the index.

        Nothing is exposed unless every embedding succeeds.

        Args:
            chunks: Chunks in document order
            embedder: Embedding service
            batch_size: Texts per embedding request (default from config)

        Returns:
            A populated VectorIndex

        Raises:
            ValueError: If batch_size is less than 1
            EmbeddingError: If any embedding call fails or returns bad vectors
        """
        if batch_size is None:
            batch_size = config.EMBEDDING_BATCH_SIZE
        if batch_size < 1:
            raise ValueError(f"Batch size must be positive, got {batch_size}")

        texts = [chunk.text for chunk in chunks]

        logger.info("index_build_started", chunk_count=len(texts), batch_size=batch_size)

        vectors: List[List[float]] = []
        for i in range(0, len(texts), batch_size):
            batch = texts[i : i + batch_size]
            try:
                batch_vectors = await embedder.embed_batch(batch)
            except EmbeddingError:
                logger.error("index_build_failed", batch_start=i, chunk_count=len(texts))
                raise

            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding service returned {len(batch_vectors)} vectors "
                    f"for {len(batch)} texts"
                )

            vectors.extend(batch_vectors)

            logger.debug(
                "embeddings_batch_generated",
                batch_size=len(batch),
                total_so_far=len(vectors),
            )

        entries = [
            IndexEntry(chunk=chunk, vector=tuple(float(x) for x in vector))
            for chunk, vector in zip(chunks, vectors)
        ]

        try:
            index = cls(entries)
        except ValueError as e:
            logger.error("index_build_failed", error=str(e))
            raise EmbeddingError(str(e)) from e

        logger.info(
            "index_built",
            entries=len(index),
            dimension=index.dimension,
        )

        return index

    @property
    def entries(self) -> Tuple[IndexEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def search(self, query_vector: Sequence[float], k: int) -> List[Tuple[Chunk, float]]:
        """Find the k chunks most similar to a query vector.

        Args:
            query_vector: Query embedding
            k: Number of results to return (at least 1)

        Returns:
            (chunk, cosine similarity) pairs, most similar first; ties keep
            insertion order. Fewer than k if the index is smaller.

        Raises:
            ValueError: If k < 1 or the query dimension is wrong
            EmptyIndexError: If the index has no entries
        """
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")

        if self._index is None:
            raise EmptyIndexError("Cannot query an empty index")

        query = np.array([query_vector], dtype=np.float64)

        if query.ndim != 2 or query.shape[1] != self.dimension:
            raise ValueError(
                f"Query dimension mismatch: expected {self.dimension}, "
                f"got {query.shape[-1]}"
            )

        unit_query = _normalize(query)[0]

        # Score every entry so ties at the k-th position resolve by insertion order
        _, ids = self._index.search(
            unit_query[np.newaxis].astype(np.float32), self._index.ntotal
        )
        candidates = [int(idx) for idx in ids[0].tolist() if idx >= 0]

        # float32 scores of equally similar vectors can differ in the last bits
        scores = self._unit[candidates] @ unit_query
        by_score = sorted(zip(candidates, scores.tolist()), key=lambda pair: -pair[1])

        ranked: List[Tuple[int, float]] = []
        group: List[Tuple[int, float]] = []
        for idx, score in by_score:
            if group and group[0][1] - score > SCORE_TOLERANCE:
                ranked.extend(sorted(group))
                group = []
            group.append((idx, score))
        ranked.extend(sorted(group))
        ranked = ranked[:k]

        logger.debug(
            "vector_search_completed",
            top_k=k,
            results_found=len(ranked),
            top_score=ranked[0][1] if ranked else None,
        )

        return [(self._entries[idx].chunk, score) for idx, score in ranked]

    def query(self, query_vector: Sequence[float], k: int) -> List[Chunk]:
        """Like search(), without the scores."""
        return [chunk for chunk, _ in self.search(query_vector, k)]

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the index.

        Returns:
            Dictionary with index statistics
        """
        return {
            "initialized": self._index is not None,
            "vector_count": len(self._entries),
            "dimension": self.dimension,
            "index_type": "IndexFlatIP" if self._index is not None else None,
        }
