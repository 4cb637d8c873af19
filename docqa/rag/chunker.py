"""Recursive text chunking with overlap for the RAG pipeline.

Text is split at the coarsest boundary that works (paragraph, line,
sentence, word) and falls back to raw character cuts. Chunks are
character-based to avoid tokenizer dependencies.
"""
import re
from typing import Any, Dict, List, Optional, Sequence, Tuple

import structlog

from docqa import config
from docqa.rag.documents import Chunk, Document

logger = structlog.get_logger()

# Highest priority first. A match stays attached to the piece it ends.
DEFAULT_SEPARATORS = (
    r"\n\n",  # paragraph
    r"\n",  # line
    r"[.!?]\s",  # sentence
    r" ",  # word
)

Span = Tuple[int, int]


class RecursiveTextChunker:
    """Splits text along separator boundaries into overlapping chunks."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separators: Optional[Sequence[str]] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum chunk length in characters (default from config)
            chunk_overlap: Characters repeated from the previous chunk (default from config)
            separators: Regular expressions, coarsest first (default: paragraph,
                line, sentence, word)

        Raises:
            ValueError: If the sizes are out of range or a separator is empty
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )

        if self.chunk_size < 1:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")

        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be between 0 and "
                f"chunk size ({self.chunk_size})"
            )

        patterns = DEFAULT_SEPARATORS if separators is None else separators
        self.separators = [re.compile(p) for p in patterns]
        for pattern in self.separators:
            if pattern.match(""):
                raise ValueError(f"Separator {pattern.pattern!r} matches empty text")

        # Room left for new text once the overlap prefix is added
        self._budget = self.chunk_size - self.chunk_overlap

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            separator_count=len(self.separators),
        )

    def split(self, document: Document) -> List[Chunk]:
        """Split a document into chunks that inherit its metadata."""
        return self.chunk_text(document.text, document.metadata)

    def chunk_text(
        self, text: str, metadata: Optional[Dict[str, Any]] = None
    ) -> List[Chunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk
            metadata: Metadata copied into every chunk

        Returns:
            List of Chunk objects in document order
        """
        if not text:
            return []

        base_metadata = dict(metadata or {})

        if len(text) <= self.chunk_size:
            logger.debug(
                "text_shorter_than_chunk_size",
                text_length=len(text),
                chunk_size=self.chunk_size,
            )
            return [self._make_chunk(text, 0, len(text), 0, 0, base_metadata)]

        spans = self._split_span(text, 0, len(text), 0)

        chunks = []
        previous_start = 0  # start of the previous chunk, overlap included
        for chunk_index, (start, end) in enumerate(spans):
            overlap_start = max(previous_start, start - self.chunk_overlap)
            chunks.append(
                self._make_chunk(
                    text, overlap_start, end, start - overlap_start,
                    chunk_index, base_metadata,
                )
            )
            previous_start = overlap_start

        logger.info(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.text) for c in chunks) // len(chunks),
        )

        return chunks

    def _make_chunk(
        self,
        text: str,
        start: int,
        end: int,
        overlap: int,
        chunk_index: int,
        base_metadata: Dict[str, Any],
    ) -> Chunk:
        metadata = dict(base_metadata)
        metadata.update(
            chunk_index=chunk_index,
            char_start=start,
            char_end=end,
            overlap=overlap,
        )
        return Chunk(text=text[start:end], metadata=metadata)

    def _split_span(self, text: str, start: int, end: int, level: int) -> List[Span]:
        """Split text[start:end] into adjoining spans no longer than the budget.

        Args:
            text: Full text being chunked
            start: Span start offset
            end: Span end offset
            level: Index of the first separator still allowed

        Returns:
            Spans covering [start, end) exactly, in order
        """
        if end - start <= self._budget:
            return [(start, end)]

        for depth in range(level, len(self.separators)):
            pieces = self._pieces(text, start, end, self.separators[depth])
            if len(pieces) > 1:
                return self._merge(text, pieces, depth + 1)

        # No separator left: hard cut
        return [
            (offset, min(offset + self._budget, end))
            for offset in range(start, end, self._budget)
        ]

    def _pieces(self, text: str, start: int, end: int, pattern: re.Pattern) -> List[Span]:
        """Cut text[start:end] after every separator match."""
        cuts = [
            m.end()
            for m in pattern.finditer(text, start, end)
            if m.start() < m.end() < end
        ]
        bounds = [start] + cuts + [end]
        return [(a, b) for a, b in zip(bounds, bounds[1:]) if b > a]

    def _merge(self, text: str, pieces: List[Span], next_level: int) -> List[Span]:
        """Greedily join adjacent pieces up to the budget.

        Pieces longer than the budget are split again with finer separators.
        """
        spans: List[Span] = []
        current: Optional[Span] = None

        for piece_start, piece_end in pieces:
            if piece_end - piece_start > self._budget:
                if current is not None:
                    spans.append(current)
                    current = None
                spans.extend(self._split_span(text, piece_start, piece_end, next_level))
            elif current is not None and piece_end - current[0] <= self._budget:
                current = (current[0], piece_end)
            else:
                if current is not None:
                    spans.append(current)
                current = (piece_start, piece_end)

        if current is not None:
            spans.append(current)

        return spans

    def get_chunk_stats(self, chunks: List[Chunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of Chunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.text) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def split(document: Document, chunk_size: int, chunk_overlap: int) -> List[Chunk]:
    """Split a document with a one-off chunker (convenience function)."""
    return RecursiveTextChunker(chunk_size, chunk_overlap).split(document)
