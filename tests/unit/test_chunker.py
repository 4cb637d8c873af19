"""Tests for recursive chunking with overlap."""
import pytest

from docqa.rag.chunker import RecursiveTextChunker, split
from docqa.rag.documents import Document

LOREM = (
    "Retrieval augmented generation combines search with language models.\n\n"
    "A document is first split into chunks. Each chunk is embedded into a vector! "
    "Questions are embedded the same way? The closest chunks become context.\n"
    "Short line.\n"
    "Averyveryverylongwordwithoutanyspacesthatmustbecutatthecharacterlevel "
    "and then the text continues with ordinary words for a while so that the "
    "word level separator gets exercised too.\n\n"
    "Final paragraph."
)


def reconstruct(chunks):
    return "".join(chunk.new_text for chunk in chunks)


class TestValidation:
    def test_overlap_must_be_smaller_than_chunk_size(self):
        with pytest.raises(ValueError):
            RecursiveTextChunker(chunk_size=10, chunk_overlap=10)

    def test_negative_overlap_rejected(self):
        with pytest.raises(ValueError):
            RecursiveTextChunker(chunk_size=10, chunk_overlap=-1)

    def test_non_positive_chunk_size_rejected(self):
        with pytest.raises(ValueError):
            RecursiveTextChunker(chunk_size=0, chunk_overlap=0)

    def test_separator_matching_empty_text_rejected(self):
        with pytest.raises(ValueError):
            RecursiveTextChunker(chunk_size=10, chunk_overlap=0, separators=[r"\s*"])


class TestEdgeCases:
    def test_empty_document_yields_no_chunks(self):
        assert split(Document(text=""), 100, 10) == []

    def test_short_document_yields_single_chunk(self):
        chunks = split(Document(text="Just a sentence."), 100, 10)
        assert len(chunks) == 1
        assert chunks[0].text == "Just a sentence."
        assert chunks[0].overlap == 0

    def test_document_exactly_chunk_size_is_one_chunk(self):
        text = "x" * 50
        chunks = split(Document(text=text), 50, 20)
        assert [c.text for c in chunks] == [text]

    def test_text_without_separators_is_hard_cut(self):
        text = "a" * 95
        chunks = split(Document(text=text), 20, 5)
        assert all(len(c.text) <= 20 for c in chunks)
        assert reconstruct(chunks) == text
        assert [c.overlap for c in chunks[1:]] == [5] * (len(chunks) - 1)


class TestProperties:
    @pytest.mark.parametrize(
        "chunk_size,chunk_overlap",
        [(20, 0), (20, 5), (40, 10), (64, 32), (100, 99), (7, 3), (1, 0)],
    )
    def test_round_trip_and_length_bound(self, chunk_size, chunk_overlap):
        chunks = split(Document(text=LOREM), chunk_size, chunk_overlap)

        assert reconstruct(chunks) == LOREM
        assert all(len(c.text) <= chunk_size for c in chunks)

    @pytest.mark.parametrize("chunk_size,chunk_overlap", [(30, 8), (50, 12)])
    def test_adjacent_chunks_share_bounded_overlap(self, chunk_size, chunk_overlap):
        chunks = split(Document(text=LOREM), chunk_size, chunk_overlap)

        for previous, current in zip(chunks, chunks[1:]):
            assert 0 < current.overlap <= chunk_overlap
            assert previous.text.endswith(current.text[: current.overlap])
            assert current.char_start == previous.char_end - current.overlap

    def test_offsets_point_into_document(self):
        chunks = split(Document(text=LOREM), 45, 10)

        for index, chunk in enumerate(chunks):
            assert LOREM[chunk.char_start : chunk.char_end] == chunk.text
            assert chunk.metadata["chunk_index"] == index

    def test_deterministic(self):
        first = split(Document(text=LOREM), 35, 7)
        second = split(Document(text=LOREM), 35, 7)
        assert first == second


class TestBoundaries:
    def test_prefers_paragraph_breaks(self):
        text = "First paragraph here.\n\nSecond paragraph here."
        chunks = split(Document(text=text), 30, 0)
        assert [c.text for c in chunks] == [
            "First paragraph here.\n\n",
            "Second paragraph here.",
        ]

    def test_splits_at_sentence_boundary(self, capitals_text):
        chunks = split(Document(text=capitals_text), 40, 5)

        assert len(chunks) == 2
        assert chunks[0].text == "Paris is the capital of France. "
        assert chunks[1].text == "nce. Berlin is the capital of Germany."
        assert chunks[1].new_text == "Berlin is the capital of Germany."

    def test_falls_back_to_word_boundaries(self):
        text = "one two three four five six seven eight nine ten"
        chunks = split(Document(text=text), 15, 0)

        assert reconstruct(chunks) == text
        # Every cut lands after a space
        for chunk in chunks[:-1]:
            assert chunk.text.endswith(" ")

    def test_metadata_is_inherited(self):
        document = Document(text="a" * 30, metadata={"source": "doc.txt", "page_count": 2})
        chunks = split(document, 10, 2)

        assert all(c.metadata["source"] == "doc.txt" for c in chunks)
        assert all(c.metadata["page_count"] == 2 for c in chunks)
        assert document.metadata == {"source": "doc.txt", "page_count": 2}


def test_chunk_stats():
    chunker = RecursiveTextChunker(chunk_size=20, chunk_overlap=4)
    chunks = chunker.chunk_text("b" * 50)
    stats = chunker.get_chunk_stats(chunks)

    assert stats["chunk_count"] == len(chunks)
    assert stats["max_chunk_size"] <= 20
    assert stats["overlap"] == 4
    assert chunker.get_chunk_stats([])["chunk_count"] == 0
