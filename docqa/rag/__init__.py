"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document loading (PDF, Markdown, plain text)
- Recursive chunking with overlap
- In-memory FAISS vector index
"""
