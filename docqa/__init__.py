"""Question answering over a single document with retrieval-augmented generation."""

__version__ = "0.1.0"
