"""Tests for document loading."""
from unittest.mock import MagicMock

import pytest

from docqa.errors import DocumentLoadError
from docqa.rag import loader as loader_module
from docqa.rag.loader import DocumentLoader, load_document


@pytest.fixture
def doc_loader():
    return DocumentLoader()


def fake_pdf(pages):
    pdf = MagicMock()
    pdf.pages = []
    for text in pages:
        page = MagicMock()
        page.extract_text.return_value = text
        pdf.pages.append(page)
    pdf.__enter__.return_value = pdf
    return pdf


class TestTextAndMarkdown:
    def test_plain_text(self, doc_loader, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("Hello world.", encoding="utf-8")

        document = doc_loader.load(path)

        assert document.text == "Hello world."
        assert document.metadata["file_name"] == "notes.txt"
        assert document.metadata["file_type"] == "text"
        assert document.metadata["source"] == str(path.resolve())

    def test_markdown_frontmatter_becomes_metadata(self, doc_loader, tmp_path):
        path = tmp_path / "guide.md"
        path.write_text(
            "---\n"
            "title: Guide\n"
            "tags: [rag, search]\n"
            "created: 2024-01-15\n"
            "private: true\n"
            "---\n"
            "# Heading\n\nBody text.\n",
            encoding="utf-8",
        )

        document = doc_loader.load(path)

        assert document.text == "# Heading\n\nBody text.\n"
        assert document.metadata["title"] == "Guide"
        assert document.metadata["tags"] == ["rag", "search"]
        assert document.metadata["created"] == "2024-01-15"
        assert "private" not in document.metadata

    def test_markdown_with_invalid_frontmatter_keeps_text(self, doc_loader, tmp_path):
        path = tmp_path / "broken.markdown"
        path.write_text("---\ntitle: [unclosed\n---\nBody.\n", encoding="utf-8")

        document = doc_loader.load(path)

        assert document.text == "Body.\n"
        assert "title" not in document.metadata

    def test_markdown_without_frontmatter(self, doc_loader, tmp_path):
        path = tmp_path / "plain.md"
        path.write_text("Just text.", encoding="utf-8")

        assert doc_loader.load(path).text == "Just text."


class TestPdf:
    def test_pages_joined_with_blank_lines(self, doc_loader, tmp_path, monkeypatch):
        path = tmp_path / "paper.pdf"
        path.write_bytes(b"%PDF-1.4 placeholder")
        monkeypatch.setattr(
            loader_module.pdfplumber, "open",
            lambda _: fake_pdf(["Page one.", None, " Page three. "]),
        )

        document = doc_loader.load(path)

        assert document.text == "Page one.\n\nPage three."
        assert document.metadata["page_count"] == 3
        assert document.metadata["file_type"] == "pdf"

    def test_unreadable_pdf(self, doc_loader, tmp_path, monkeypatch):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"garbage")

        def explode(_):
            raise ValueError("not a pdf")

        monkeypatch.setattr(loader_module.pdfplumber, "open", explode)

        with pytest.raises(DocumentLoadError):
            doc_loader.load(path)

    def test_scanned_pdf_without_text(self, doc_loader, tmp_path, monkeypatch):
        path = tmp_path / "scan.pdf"
        path.write_bytes(b"%PDF-1.4")
        monkeypatch.setattr(loader_module.pdfplumber, "open", lambda _: fake_pdf([None, ""]))

        with pytest.raises(DocumentLoadError):
            doc_loader.load(path)


class TestErrors:
    def test_missing_file(self, doc_loader, tmp_path):
        with pytest.raises(DocumentLoadError):
            doc_loader.load(tmp_path / "missing.pdf")

    def test_unsupported_extension(self, doc_loader, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("a,b", encoding="utf-8")

        with pytest.raises(DocumentLoadError):
            doc_loader.load(path)

    def test_empty_text_file(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("  \n", encoding="utf-8")

        with pytest.raises(DocumentLoadError):
            load_document(path)

    def test_invalid_encoding(self, doc_loader, tmp_path):
        path = tmp_path / "latin.txt"
        path.write_bytes(b"\xff\xfe\xfa")

        with pytest.raises(DocumentLoadError):
            doc_loader.load(path)
