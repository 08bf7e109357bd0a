class KnowledgeBaseError(Exception):
    """Base class for pipeline errors"""


class ConfigurationError(KnowledgeBaseError):
    """A required credential or setting is missing"""


class VectorStoreError(KnowledgeBaseError):
    """The vector store answered with a non-success status"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class EmbeddingError(KnowledgeBaseError):
    pass


class ScrapeError(KnowledgeBaseError):
    """A page could not be fetched or had no usable title/content"""


class JobNotFoundError(KnowledgeBaseError):
    pass


class EmptyQueryError(KnowledgeBaseError, ValueError):
    pass
