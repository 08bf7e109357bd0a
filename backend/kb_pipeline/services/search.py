import logging
from kb_pipeline.config import SCORE_THRESHOLD
from kb_pipeline.errors import EmptyQueryError

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 200


def _preview(content: str | None) -> str:
    content = (content or "").strip()
    excerpt = content[:PREVIEW_LENGTH].strip()
    if len(content) > PREVIEW_LENGTH:
        excerpt += "..."
    return excerpt


def search_articles(query: str, embedder, store, limit: int = 5) -> list[dict]:
    """
    Semantic search over vectorized articles.

    Args:
        query: Free-text question
        embedder: EmbeddingClient (or compatible)
        store: VectorStoreClient (or compatible)
        limit: Maximum number of hits

    Returns:
        Hits with similarity >= SCORE_THRESHOLD, best first
    """
    if not query or not query.strip():
        raise EmptyQueryError("Query is required")

    logger.info(f"[SEARCH] Searching for: {query[:50]!r} with limit {limit}")
    query_vector = embedder.embed_query(query)

    hits = store.search(query_vector, limit=limit, score_threshold=SCORE_THRESHOLD)
    hits = [hit for hit in hits if hit.get("score", 0.0) >= SCORE_THRESHOLD]
    hits.sort(key=lambda hit: hit["score"], reverse=True)

    results = []
    for hit in hits:
        payload = hit.get("payload") or {}
        results.append({
            "id": payload.get("article_id", hit.get("id")),
            "title": payload.get("title"),
            "url": payload.get("url"),
            "category": payload.get("category"),
            "content_preview": _preview(payload.get("content")),
            "similarity_score": round(hit["score"], 3),
            "created_at": payload.get("created_at"),
            "updated_at": payload.get("updated_at"),
        })

    logger.info(f"[SEARCH] Found {len(results)} relevant articles")
    return results
