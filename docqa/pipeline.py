"""Two-stage question answering pipeline: retrieve, then generate.

A question moves through a fixed state machine:

    START --retrieve--> RETRIEVED --generate--> ANSWERED

Each stage returns a new PipelineState, so a failed stage leaves nothing
half-written behind.
"""
import asyncio
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Tuple

import structlog

from docqa import config
from docqa.errors import (
    EmbeddingError,
    EmptyIndexError,
    GenerationError,
    PipelineStateError,
    RetrievalError,
)
from docqa.llm_client import EmbeddingService, GenerationService
from docqa.rag.chunker import RecursiveTextChunker
from docqa.rag.documents import Chunk, Document
from docqa.rag.store import VectorIndex

logger = structlog.get_logger()

PROMPT_TEMPLATE = (
    "You are an assistant for question-answering tasks. Use the following pieces "
    "of retrieved context to answer the question. If you don't know the answer, "
    "just say that you don't know. Use three sentences maximum and keep the "
    "answer concise.\n"
    "Question: {question} \n"
    "Context: {context} \n"
    "Answer:"
)

CONTEXT_DELIMITER = "\n"


class Stage(str, Enum):
    START = "start"
    RETRIEVED = "retrieved"
    ANSWERED = "answered"


@dataclass(frozen=True)
class PipelineState:
    """State of one question's run."""

    question: str
    context: Optional[Tuple[Chunk, ...]] = None
    answer: Optional[str] = None
    stage: Stage = Stage.START


class QAPipeline:
    """Answers questions about one indexed document."""

    def __init__(
        self,
        index: VectorIndex,
        embedder: EmbeddingService,
        generator: GenerationService,
        top_k: Optional[int] = None,
        prompt_template: str = PROMPT_TEMPLATE,
        context_delimiter: str = CONTEXT_DELIMITER,
    ):
        """Initialize the pipeline.

        Args:
            index: Built vector index
            embedder: Service used to embed questions
            generator: Service used to produce answers
            top_k: Chunks retrieved per question (default from config)
            prompt_template: Template with {question} and {context} fields
            context_delimiter: Separator between retrieved chunks
        """
        self.index = index
        self.embedder = embedder
        self.generator = generator
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.prompt_template = prompt_template
        self.context_delimiter = context_delimiter

        self._transitions: Dict[Stage, Callable[[PipelineState], Awaitable[PipelineState]]] = {
            Stage.START: self.retrieve,
            Stage.RETRIEVED: self.generate,
        }
        self._lock = asyncio.Lock()

    @staticmethod
    def _expect(state: PipelineState, stage: Stage) -> None:
        if state.stage is not stage:
            raise PipelineStateError(
                f"Expected state at {stage.value!r}, got {state.stage.value!r}"
            )

    async def retrieve(self, state: PipelineState) -> PipelineState:
        """Embed the question and fetch the most similar chunks.

        Raises:
            PipelineStateError: If the state is not at START
            RetrievalError: If embedding or the index query fails
        """
        self._expect(state, Stage.START)

        try:
            query_vector = await self.embedder.embed(state.question)
            results = self.index.search(query_vector, self.top_k)
        except (EmbeddingError, EmptyIndexError, ValueError) as e:
            logger.error(
                "retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
                query_preview=state.question[:100],
            )
            raise RetrievalError(f"Retrieval failed: {e}") from e

        logger.info(
            "retrieval_completed",
            query_length=len(state.question),
            results_returned=len(results),
            top_score=results[0][1] if results else None,
        )

        return dataclasses.replace(
            state,
            context=tuple(chunk for chunk, _ in results),
            stage=Stage.RETRIEVED,
        )

    def compose_prompt(self, state: PipelineState) -> str:
        """Fill the prompt template with the question and ranked context."""
        context = self.context_delimiter.join(chunk.text for chunk in state.context or ())
        return self.prompt_template.format(question=state.question, context=context)

    async def generate(self, state: PipelineState) -> PipelineState:
        """Ask the generation service to answer from the retrieved context.

        Raises:
            PipelineStateError: If the state is not at RETRIEVED
            GenerationError: If the completion call fails
        """
        self._expect(state, Stage.RETRIEVED)

        prompt = self.compose_prompt(state)

        try:
            answer = await self.generator.complete(prompt)
        except GenerationError as e:
            logger.error("generation_failed", error=str(e), prompt_length=len(prompt))
            raise

        logger.info("generation_completed", answer_length=len(answer))

        return dataclasses.replace(state, answer=answer, stage=Stage.ANSWERED)

    async def run(self, question: str) -> PipelineState:
        """Run both stages for one question.

        Runs are serialized: a second question waits for the first to finish.

        Args:
            question: Natural-language question

        Returns:
            Final state at ANSWERED

        Raises:
            ValueError: If the question is blank
            RetrievalError: If the retrieve stage fails
            GenerationError: If the generate stage fails
        """
        if not question or not question.strip():
            raise ValueError("Question must not be empty")

        async with self._lock:
            state = PipelineState(question=question)
            while state.stage is not Stage.ANSWERED:
                state = await self._transitions[state.stage](state)
            return state

    async def answer(self, question: str) -> str:
        """Answer a question (convenience wrapper around run())."""
        state = await self.run(question)
        return state.answer


async def build_index(
    document: Document,
    embedder: EmbeddingService,
    chunk_size: int,
    chunk_overlap: int,
    batch_size: Optional[int] = None,
) -> VectorIndex:
    """Chunk a document and embed every chunk into a new index.

    Raises:
        ValueError: If the chunk sizes are invalid
        EmbeddingError: If any embedding fails
    """
    chunker = RecursiveTextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    chunks = chunker.split(document)
    return await VectorIndex.build(chunks, embedder, batch_size=batch_size)


async def answer(
    index: VectorIndex,
    question: str,
    embedder: EmbeddingService,
    generator: GenerationService,
    top_k: Optional[int] = None,
) -> str:
    """Answer one question against an index.

    Raises:
        RetrievalError: If the retrieve stage fails
        GenerationError: If the generate stage fails
    """
    pipeline = QAPipeline(index, embedder, generator, top_k=top_k)
    return await pipeline.answer(question)
