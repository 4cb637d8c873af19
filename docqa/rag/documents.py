"""Value types shared by the loader, chunker and vector index."""
from dataclasses import dataclass, field
from typing import Any, Dict


@dataclass(frozen=True)
class Document:
    """Full source text with provenance metadata."""

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Chunk:
    """A contiguous span of a document, the unit of retrieval.

    Besides the document's own metadata, a chunk carries ``chunk_index``,
    ``char_start``/``char_end`` (offsets into the document text) and
    ``overlap``, the number of leading characters repeated from the
    previous chunk.
    """

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def char_start(self) -> int:
        return self.metadata.get("char_start", 0)

    @property
    def char_end(self) -> int:
        return self.metadata.get("char_end", len(self.text))

    @property
    def overlap(self) -> int:
        return self.metadata.get("overlap", 0)

    @property
    def new_text(self) -> str:
        """The part of the chunk not shared with its predecessor."""
        return self.text[self.overlap :]
