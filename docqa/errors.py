"""Exception hierarchy for docqa.

Every error raised on purpose derives from DocQAError so the CLI can report
a failed question and keep going.
"""


class DocQAError(Exception):
    """Base class for all docqa errors."""


class ConfigError(DocQAError):
    """Settings are missing or invalid."""


class DocumentLoadError(DocQAError):
    """A document could not be read or produced no text."""


class EmbeddingError(DocQAError):
    """The embedding service failed or returned an unusable vector."""


class EmptyIndexError(DocQAError):
    """A query was made against an index with no entries."""


class RetrievalError(DocQAError):
    """The retrieve stage failed for a question."""


class GenerationError(DocQAError):
    """The completion service failed for a question."""


class PipelineStateError(DocQAError):
    """A pipeline stage was invoked on a state in the wrong stage."""
