"""Factories for the external service clients, one set per request or CLI run."""

import requests

from kb_pipeline import config
from kb_pipeline.config import USER_AGENT
from kb_pipeline.errors import ConfigurationError
from kb_pipeline.services.embeddings import EmbeddingClient
from kb_pipeline.services.vector_store import VectorStoreClient


def get_embedding_client() -> EmbeddingClient:
    if not config.OPENAI_API_KEY:
        raise ConfigurationError("OPENAI_API_KEY not found in environment variables")
    return EmbeddingClient(api_key=config.OPENAI_API_KEY)


def get_vector_store() -> VectorStoreClient:
    if not config.QDRANT_API_KEY:
        raise ConfigurationError("QDRANT_API_KEY not found in environment variables")
    return VectorStoreClient(
        base_url=config.QDRANT_URL,
        api_key=config.QDRANT_API_KEY,
        collection=config.QDRANT_COLLECTION,
    )


def get_http_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT})
    return session
