import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable
from sqlalchemy.orm import Session
from kb_pipeline.config import (
    EMBEDDING_DIMENSION,
    EMBEDDING_INPUT_LIMIT,
    PAYLOAD_CONTENT_LIMIT,
    VECTORIZE_DEFAULT_BATCH,
    VECTORIZE_SUB_BATCH,
    INTER_BATCH_DELAY,
    MAX_CONTINUATIONS,
)
from kb_pipeline.models import Article
from kb_pipeline.services.articles import (
    count_unvectorized,
    get_unvectorized_articles,
    mark_vectorized,
    reset_vectorization,
)
from kb_pipeline.services.schedules import record_scheduled_run
from kb_pipeline.utils import isoformat

logger = logging.getLogger(__name__)


@dataclass
class VectorizeResult:
    processed: int
    failed: int
    remaining: int
    is_complete: bool

    @property
    def next_batch(self) -> bool:
        return not self.is_complete


def build_payload(article: Article) -> dict:
    """Payload stored next to each vector; search results are read back from it."""
    return {
        "article_id": article.id,
        "title": article.title,
        "url": article.url,
        "category": article.category,
        "content": (article.content or "")[:PAYLOAD_CONTENT_LIMIT],
        "created_at": isoformat(article.created_at),
        "updated_at": isoformat(article.updated_at),
    }


def _index_article(item: dict, embedder, store):
    vector = embedder.embed(item["content"][:EMBEDDING_INPUT_LIMIT])
    store.upsert_point(item["id"], vector, item["payload"])


def _vectorize_sub_batch(db: Session, articles: list[Article], embedder, store) -> tuple[int, int]:
    # Threads only see plain dicts; the session stays on this thread.
    items = [
        {"id": a.id, "content": a.content, "payload": build_payload(a)}
        for a in articles
    ]
    processed = 0
    failed = 0

    with ThreadPoolExecutor(max_workers=len(items)) as executor:
        futures = [executor.submit(_index_article, item, embedder, store) for item in items]
        outcomes = []
        for article, future in zip(articles, futures):
            try:
                future.result()
                outcomes.append((article, None))
            except Exception as e:
                outcomes.append((article, e))

    for article, error in outcomes:
        if error is not None:
            failed += 1
            logger.error(f"[VECTORIZE] Failed to vectorize {article.title}: {error}")
            continue
        try:
            mark_vectorized(db, article, article.id)
            processed += 1
            logger.info(f"[VECTORIZE] Vectorized: {article.title}")
        except Exception as e:
            db.rollback()
            failed += 1
            logger.error(f"[VECTORIZE] Failed to record vectorization of {article.title}: {e}")

    return processed, failed


def run_vectorization(
    db: Session,
    embedder,
    store,
    batch_size: int = VECTORIZE_DEFAULT_BATCH,
    auto_scheduled: bool = False,
    force_all: bool = False,
    delay: float = INTER_BATCH_DELAY
) -> VectorizeResult:
    """
    Embed and index one batch of un-vectorized articles.

    Args:
        db: Database session
        embedder: EmbeddingClient (or compatible)
        store: VectorStoreClient (or compatible)
        batch_size: Articles to select in this run
        auto_scheduled: Update the vectorization schedule row afterwards
        force_all: Clear every vectorization reference first so the whole corpus is re-embedded
        delay: Seconds to sleep between sub-batches

    Returns:
        VectorizeResult with this run's counts and the remaining backlog
    """
    logger.info(f"[VECTORIZE] Starting vectorization with batch size {batch_size}")

    if store.ensure_collection(EMBEDDING_DIMENSION):
        logger.info(f"[VECTORIZE] Created vector collection {store.collection}")

    if force_all:
        reset_vectorization(db)

    articles = get_unvectorized_articles(db, max(1, batch_size))
    if not articles:
        logger.info("[VECTORIZE] No articles to vectorize")
        return VectorizeResult(processed=0, failed=0, remaining=0, is_complete=True)

    logger.info(f"[VECTORIZE] Processing {len(articles)} articles")

    processed = 0
    failed = 0
    for i in range(0, len(articles), VECTORIZE_SUB_BATCH):
        batch = articles[i:i + VECTORIZE_SUB_BATCH]
        ok, bad = _vectorize_sub_batch(db, batch, embedder, store)
        processed += ok
        failed += bad

        if delay and i + VECTORIZE_SUB_BATCH < len(articles):
            time.sleep(delay)

    remaining = count_unvectorized(db)
    logger.info(
        f"[VECTORIZE] Batch completed. Processed: {processed}, Failed: {failed}, Remaining: {remaining}"
    )

    if auto_scheduled:
        record_scheduled_run(db, processed, failed, remaining)

    return VectorizeResult(
        processed=processed,
        failed=failed,
        remaining=remaining,
        is_complete=remaining == 0,
    )


def continue_vectorization(
    session_factory: Callable[[], Session],
    embedder,
    store,
    batch_size: int = VECTORIZE_DEFAULT_BATCH,
    auto_scheduled: bool = False,
    delay: float = INTER_BATCH_DELAY
):
    """
    Keep running batches until the backlog is empty.

    Stops early when a whole batch fails, so a persistently broken
    provider does not spin through the same articles.
    """
    db = session_factory()
    try:
        for _ in range(MAX_CONTINUATIONS):
            result = run_vectorization(
                db, embedder, store, batch_size, auto_scheduled=auto_scheduled, delay=delay
            )
            if result.is_complete:
                return
            if result.processed == 0:
                logger.warning(
                    f"[VECTORIZE] No progress in last batch, stopping with {result.remaining} remaining"
                )
                return

        logger.warning(f"[VECTORIZE] Backlog not drained after {MAX_CONTINUATIONS} continuations")
    except Exception:
        db.rollback()
        logger.exception("[VECTORIZE] Continuation failed")
        raise
    finally:
        db.close()
