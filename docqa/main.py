"""Command-line shell: index a document and answer questions about it.

Usage:
    docqa paper.pdf                      # Interactive question loop
    docqa notes.md -q "What is X?"       # Answer and exit
    docqa paper.pdf --provider ollama    # Use a local Ollama server
"""
import argparse
import asyncio
import dataclasses
import logging
import os
import sys
from typing import Callable, List, Optional

import structlog
from dotenv import load_dotenv

from docqa.config import PROVIDERS, Settings
from docqa.errors import DocQAError
from docqa.llm_client import create_client
from docqa.pipeline import QAPipeline
from docqa.rag.chunker import RecursiveTextChunker
from docqa.rag.loader import DocumentLoader
from docqa.rag.store import VectorIndex

logger = structlog.get_logger()

EXIT_COMMAND = "/bye"


def configure_logging(level: str) -> None:
    """Configure structured logging to stderr."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.WARNING),
        force=True,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docqa",
        description="Ask questions about a PDF, Markdown or text document",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  docqa paper.pdf                      # Interactive, type '{EXIT_COMMAND}' to exit
  docqa notes.md -q "What is X?"       # Answer and exit
  docqa paper.pdf --provider ollama    # Use a local Ollama server
        """,
    )

    parser.add_argument("path", help="Document to index (.pdf, .md, .txt)")

    parser.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        help="Chunk size in characters (default: CHUNK_SIZE or 1000)",
    )

    parser.add_argument(
        "--chunk-overlap",
        type=int,
        default=None,
        help="Chunk overlap in characters (default: CHUNK_OVERLAP or 200)",
    )

    parser.add_argument(
        "--top-k",
        type=int,
        default=None,
        help="Chunks retrieved per question (default: RETRIEVAL_TOP_K or 4)",
    )

    parser.add_argument(
        "--provider",
        choices=PROVIDERS,
        default=None,
        help="Embedding/chat provider (default: LLM_PROVIDER or openai)",
    )

    parser.add_argument(
        "--question",
        "-q",
        action="append",
        default=[],
        help="Answer this question and exit (repeatable)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Log debug output to stderr",
    )

    return parser


def resolve_settings(args: argparse.Namespace, environ=None) -> Settings:
    """Merge environment settings with command-line overrides.

    Raises:
        ConfigError: If the resulting settings are invalid
    """
    if args.provider is not None:
        environ = dict(os.environ if environ is None else environ)
        environ["LLM_PROVIDER"] = args.provider

    settings = Settings.from_env(environ)

    overrides = {
        "chunk_size": args.chunk_size,
        "chunk_overlap": args.chunk_overlap,
        "top_k": args.top_k,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    if args.verbose:
        overrides["log_level"] = "DEBUG"

    return dataclasses.replace(settings, **overrides).validate()


async def ask(pipeline: QAPipeline, question: str, output: Callable[[str], None] = print) -> bool:
    """Answer one question, reporting failures without raising.

    Returns:
        True if the question was answered
    """
    try:
        answer = await pipeline.answer(question)
    except (DocQAError, ValueError) as e:
        logger.error("question_failed", error=str(e), error_type=type(e).__name__)
        output(f"\nError processing question: {e}")
        return False

    output(f"\nAnswer: {answer}")
    return True


async def repl(
    pipeline: QAPipeline,
    input_fn: Callable[[str], str] = input,
    output: Callable[[str], None] = print,
) -> None:
    """Read questions until '/bye' or end of input."""
    output(f"Ask questions about your document (type '{EXIT_COMMAND}' to exit)")

    while True:
        try:
            question = input_fn("\n> ").strip()
        except EOFError:
            output("")
            break

        if question.lower() == EXIT_COMMAND:
            output("Goodbye!")
            break

        if not question:
            continue

        await ask(pipeline, question, output)
        output(f"\nAsk another question or type '{EXIT_COMMAND}' to exit")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Index the document, then answer questions."""
    print(f"Loading document: {args.path}")
    document = DocumentLoader().load(args.path)
    print(f"Loaded {document.metadata['file_name']} ({len(document.text)} characters)")

    chunker = RecursiveTextChunker(settings.chunk_size, settings.chunk_overlap)
    chunks = chunker.split(document)
    stats = chunker.get_chunk_stats(chunks)
    print(
        f"Split into {stats['chunk_count']} chunks "
        f"(avg {stats['avg_chunk_size']} chars, overlap {stats['overlap']})"
    )

    client = create_client(settings)

    print(f"Creating embeddings with {settings.embedding_model}...")
    index = await VectorIndex.build(
        chunks, client, batch_size=settings.embedding_batch_size
    )
    print("Created embeddings stored in an in-memory vector index")

    pipeline = QAPipeline(index, client, client, top_k=settings.top_k)

    if args.question:
        results = [await ask(pipeline, question) for question in args.question]
        return 0 if all(results) else 1

    await repl(pipeline)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the docqa command."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        settings = resolve_settings(args)
    except DocQAError as e:
        print(f"\n❌ Configuration error: {e}\n", file=sys.stderr)
        return 1

    configure_logging(settings.log_level)

    try:
        return asyncio.run(run(args, settings))

    except KeyboardInterrupt:
        print("\n\nCancelled by user.\n")
        return 1

    except DocQAError as e:
        print(f"\n❌ Error: {e}\n", file=sys.stderr)
        logger.error("docqa_failed", error=str(e), error_type=type(e).__name__)
        return 1


if __name__ == "__main__":
    sys.exit(main())
