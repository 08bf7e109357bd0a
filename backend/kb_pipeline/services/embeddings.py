import logging
from langchain_openai import OpenAIEmbeddings
from kb_pipeline.config import EMBEDDING_MODEL, EMBEDDING_DIMENSION, EMBEDDING_INPUT_LIMIT
from kb_pipeline.errors import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns text into fixed-length vectors through the OpenAI embeddings API"""

    def __init__(self, api_key: str, model: str = EMBEDDING_MODEL, dimension: int = EMBEDDING_DIMENSION):
        self.model = model
        self.dimension = dimension
        self._embeddings = OpenAIEmbeddings(model=model, api_key=api_key)

    def embed(self, text: str) -> list[float]:
        """Embed article content, truncated to the provider's input limit."""
        truncated = text[:EMBEDDING_INPUT_LIMIT]
        try:
            vectors = self._embeddings.embed_documents([truncated])
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        if not vectors:
            raise EmbeddingError("Embedding provider returned no vectors")
        return self._check(vectors[0])

    def embed_query(self, text: str) -> list[float]:
        try:
            vector = self._embeddings.embed_query(text[:EMBEDDING_INPUT_LIMIT])
        except Exception as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        return self._check(vector)

    def _check(self, vector: list[float]) -> list[float]:
        if len(vector) != self.dimension:
            raise EmbeddingError(
                f"Expected {self.dimension}-dimensional embedding, got {len(vector)}"
            )
        logger.debug(f"[EMBED] Created {len(vector)}-dim embedding with {self.model}")
        return list(vector)
