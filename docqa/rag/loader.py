"""Document loading for PDF, Markdown and plain text files.

Handles:
- PDF text extraction, page by page
- YAML frontmatter parsing for Markdown
- Provenance metadata for every document
"""
import re
from pathlib import Path
from typing import Any, Dict, Tuple, Union

import pdfplumber
import structlog
import yaml

from docqa.errors import DocumentLoadError
from docqa.rag.documents import Document

logger = structlog.get_logger()

PAGE_SEPARATOR = "\n\n"

# Frontmatter fields surfaced as document metadata
FRONTMATTER_FIELDS = ("title", "tags", "created", "updated", "author")


class DocumentLoader:
    """Loads a single file into a Document."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

    SUFFIXES = {
        ".pdf": "pdf",
        ".md": "markdown",
        ".markdown": "markdown",
        ".txt": "text",
    }

    def load(self, path: Union[str, Path]) -> Document:
        """Load a file and extract its text and metadata.

        Args:
            path: Path to a .pdf, .md/.markdown or .txt file

        Returns:
            Document with non-empty text

        Raises:
            DocumentLoadError: If the file is missing, unsupported, unreadable
                or contains no text
        """
        file_path = Path(path).expanduser().resolve()

        if not file_path.is_file():
            raise DocumentLoadError(f"File not found: {file_path}")

        file_type = self.SUFFIXES.get(file_path.suffix.lower())
        if file_type is None:
            supported = ", ".join(sorted(self.SUFFIXES))
            raise DocumentLoadError(
                f"Unsupported file type {file_path.suffix!r} (supported: {supported})"
            )

        metadata: Dict[str, Any] = {
            "source": str(file_path),
            "file_name": file_path.name,
            "file_type": file_type,
        }

        if file_type == "pdf":
            text, extra = self._load_pdf(file_path)
        elif file_type == "markdown":
            text, extra = self._load_markdown(file_path)
        else:
            text, extra = self._read_text(file_path), {}

        metadata.update(extra)

        if not text.strip():
            raise DocumentLoadError(f"No text could be extracted from {file_path}")

        logger.info(
            "document_loaded",
            path=str(file_path),
            file_type=file_type,
            content_length=len(text),
        )

        return Document(text=text, metadata=metadata)

    def _read_text(self, file_path: Path) -> str:
        try:
            return file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.error("document_read_error", path=str(file_path), error=str(e))
            raise DocumentLoadError(f"Cannot read {file_path}: {e}") from e

    def _load_pdf(self, file_path: Path) -> Tuple[str, Dict[str, Any]]:
        """Extract the text of every page, joined by blank lines."""
        try:
            with pdfplumber.open(file_path) as pdf:
                pages = [(page.extract_text() or "").strip() for page in pdf.pages]
        except Exception as e:
            logger.error("pdf_open_failed", path=str(file_path), error=str(e))
            raise DocumentLoadError(f"Cannot read PDF {file_path}: {e}") from e

        text = PAGE_SEPARATOR.join(page for page in pages if page)

        logger.debug(
            "pdf_pages_extracted",
            path=str(file_path),
            page_count=len(pages),
            empty_pages=sum(1 for page in pages if not page),
        )

        return text, {"page_count": len(pages)}

    def _load_markdown(self, file_path: Path) -> Tuple[str, Dict[str, Any]]:
        """Read markdown and move frontmatter fields into metadata."""
        content = self._read_text(file_path)
        frontmatter, text = self._parse_frontmatter(content)

        metadata = {}
        for name in FRONTMATTER_FIELDS:
            if name in frontmatter:
                value = frontmatter[name]
                # Convert date/datetime objects to ISO format strings
                if hasattr(value, "isoformat"):
                    value = value.isoformat()
                metadata[name] = value

        return text, metadata

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Args:
            content: Full markdown content

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            frontmatter = None

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, content[match.end() :]


def load_document(path: Union[str, Path]) -> Document:
    """Load a document (convenience function)."""
    return DocumentLoader().load(path)
